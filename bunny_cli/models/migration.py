"""Run configuration and per-run state."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum

from ..exceptions import ConfigurationError
from .record import BatchStatus, ImportBatchResult, SkippedRecord


class ImportKind(str, Enum):
    """Entity kinds the importer knows how to submit."""
    ACCOUNT = "account"
    CONTACT = "contact"
    SUBSCRIPTION = "subscription"
    PRODUCT = "product"
    MRR = "mrr"


class LLMProvider(str, Enum):
    """LLM providers usable by the branding bootstrap."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass
class Profile:
    """Credentials for one Bunny instance plus optional integration keys."""
    name: str = "default"
    base_url: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    stripe_secret_key: Optional[str] = None
    llm_provider: Optional[str] = None
    llm_api_key: Optional[str] = None

    REQUIRED_FIELDS = ("base_url", "client_id", "client_secret")

    def is_complete(self) -> bool:
        """Check that the platform credentials are all present."""
        return all(getattr(self, f) for f in self.REQUIRED_FIELDS)

    def require_complete(self) -> "Profile":
        """Raise ConfigurationError unless the platform credentials are set."""
        if not self.is_complete():
            raise ConfigurationError(
                f"Profile '{self.name}' is missing required configuration "
                "(base_url, client_id, or client_secret)"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (without the name)."""
        data = {
            "base_url": self.base_url,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "stripe_secret_key": self.stripe_secret_key,
            "llm_provider": self.llm_provider,
            "llm_api_key": self.llm_api_key,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "Profile":
        """Create from dictionary."""
        return cls(
            name=name,
            base_url=data.get("base_url"),
            client_id=data.get("client_id"),
            client_secret=data.get("client_secret"),
            stripe_secret_key=data.get("stripe_secret_key"),
            llm_provider=data.get("llm_provider"),
            llm_api_key=data.get("llm_api_key"),
        )


@dataclass
class AccountCache:
    """
    Source account identifier -> remote account id, for one import run.

    Lets later subscription rows attach to an account created by an earlier
    row instead of creating a duplicate. A repeated key overwrites the
    previous id.
    """
    _ids: Dict[str, str] = field(default_factory=dict)

    def get(self, source_id: Optional[str]) -> Optional[str]:
        if not source_id:
            return None
        return self._ids.get(source_id)

    def remember(self, source_id: Optional[str], remote_id: Optional[str]) -> None:
        if source_id and remote_id:
            self._ids[source_id] = remote_id

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


@dataclass
class CommandResult:
    """What one import, migration or bootstrap command did."""
    command: str
    batch: Optional[ImportBatchResult] = None
    skipped: List[SkippedRecord] = field(default_factory=list)
    cancelled: bool = False
    artifacts: Dict[str, str] = field(default_factory=dict)
    messages: List[str] = field(default_factory=list)
    failed: bool = False

    @property
    def exit_code(self) -> int:
        """1 when the command failed or every submitted record failed, else 0."""
        if self.failed:
            return 1
        if self.batch and self.batch.total_count and self.batch.status == BatchStatus.FAILED:
            return 1
        return 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "command": self.command,
            "batch": self.batch.to_dict() if self.batch else None,
            "skipped": [s.to_dict() for s in self.skipped],
            "cancelled": self.cancelled,
            "artifacts": self.artifacts,
            "messages": self.messages,
            "failed": self.failed,
        }
