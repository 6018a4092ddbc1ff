"""Access to repeating column groups such as `Charge 2 Tier 0 Price`."""

from typing import Any, Dict, Iterator, List, Optional, Tuple

from .validator import parse_int


class GroupFields:
    """Field accessor for one group instance, e.g. every `Charge 2 *` column."""

    def __init__(self, row: Dict[str, Any], prefix: str):
        self.row = row
        self.prefix = prefix

    def column(self, field: str) -> str:
        return f"{self.prefix} {field}"

    def has(self, field: str) -> bool:
        return self.column(field) in self.row

    def get(self, field: str, default: Optional[str] = None) -> Optional[str]:
        value = self.row.get(self.column(field))
        return default if value is None else value

    def __repr__(self) -> str:
        return f"GroupFields({self.prefix!r})"


def iter_groups(
    row: Dict[str, Any],
    group: str,
    required: str = "Code",
    start: int = 1
) -> Iterator[Tuple[int, GroupFields]]:
    """
    Yield (index, fields) for `<group> <N> *` column groups.

    Iteration starts at `start` and stops at the first index whose
    `required` column is missing or empty.
    """
    index = start
    while row.get(f"{group} {index} {required}"):
        yield index, GroupFields(row, f"{group} {index}")
        index += 1


def tier_start(tier: GroupFields) -> Optional[int]:
    """
    The `Quantity From` of a tier, or None when the tier list ends here.

    A value of 0 means the first tier and is normalized to 1. Missing or
    non-numeric values end the list.
    """
    value = tier.get("Quantity From")
    if value is None:
        return None
    text = str(value).strip()
    try:
        float(text)
    except ValueError:
        return None

    start = parse_int(text)
    if start is None:
        return None
    return 1 if start == 0 else start


def iter_tiers(charge: GroupFields) -> Iterator[Tuple[int, GroupFields, int]]:
    """Yield (index, fields, starts) for the tiers of a charge, from Tier 0."""
    index = 0
    while True:
        tier = GroupFields(charge.row, charge.column(f"Tier {index}"))
        starts = tier_start(tier)
        if not starts:
            return
        yield index, tier, starts
        index += 1


def charge_codes(row: Dict[str, Any]) -> List[str]:
    """Every non-empty `Charge * Code` value of a row, in column order."""
    return [
        value for key, value in row.items()
        if key.startswith("Charge ") and key.endswith(" Code") and value
    ]
