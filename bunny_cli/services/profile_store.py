"""Profile persistence in a JSON config file."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..exceptions import ConfigurationError
from ..models.migration import Profile

logger = logging.getLogger(__name__)


CONFIG_ENV_VAR = "BUNNY_CLI_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "bunny-cli" / "config.json"
SECRET_MASK = "********"


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override) if override else DEFAULT_CONFIG_PATH


def mask_key(value: str) -> str:
    """Show a provider key as its first 8 and last 3 characters."""
    return f"{value[:8]}...{value[-3:]}"


def masked_profile(profile: Profile) -> Dict[str, Any]:
    """Profile values safe to print: secrets hidden, sk_ keys shortened."""
    shown: Dict[str, Any] = {}
    for key, value in profile.to_dict().items():
        if key in ("client_secret", "llm_api_key"):
            shown[key] = SECRET_MASK
        elif isinstance(value, str) and value.startswith("sk_"):
            shown[key] = mask_key(value)
        else:
            shown[key] = value
    return shown


class ProfileStore:
    """
    Named profiles stored as `{"profiles": {"<name>": {...}}}`.

    The file is read once when the store is created; every save rewrites it.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else default_config_path()
        self._profiles: Dict[str, Dict[str, Any]] = self._read()

    def _read(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.is_file():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Could not read config file {self.path}: {e}") from e
        profiles = data.get("profiles") if isinstance(data, dict) else None
        return profiles if isinstance(profiles, dict) else {}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"profiles": self._profiles}, f, indent=2)
        logger.debug(f"Saved config to {self.path}")

    def names(self) -> List[str]:
        return sorted(self._profiles)

    def find(self, name: str) -> Optional[Profile]:
        data = self._profiles.get(name)
        return Profile.from_dict(name, data) if data is not None else None

    def get(self, name: str) -> Profile:
        """
        Load a profile.

        Raises:
            ConfigurationError: no profile has that name
        """
        profile = self.find(name)
        if profile is None:
            raise ConfigurationError(f"Profile '{name}' not found. Run \"bunny configure\" first.")
        return profile

    def save(self, profile: Profile) -> None:
        self._profiles[profile.name] = profile.to_dict()
        self._write()

    def update(self, name: str, **values: Any) -> Profile:
        """Set individual values on a profile, creating it if needed."""
        profile = self.find(name) or Profile(name=name)
        for key, value in values.items():
            if not hasattr(profile, key):
                raise ConfigurationError(f"Unknown profile setting: {key}")
            setattr(profile, key, value)
        self.save(profile)
        return profile
