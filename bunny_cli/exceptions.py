"""
Error types raised by bunny-cli.

Fatal errors (configuration, input files, missing destination resources)
abort a command before any write. RecordError is raised by a single record
submission and is always caught by the batch executor.
"""

from typing import Any, Dict, Optional


class BunnyCLIError(Exception):
    """Base error with a stable code and a human-readable message."""

    code = "BUNNY_CLI_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(BunnyCLIError):
    """A profile is missing or incomplete, or a required argument was not given."""

    code = "CONFIGURATION_ERROR"


class InputFileError(BunnyCLIError):
    """An input file could not be read or parsed."""

    code = "INPUT_FILE_ERROR"


class MissingResourceError(BunnyCLIError):
    """A resource required at the destination does not exist."""

    code = "MISSING_RESOURCE"


class RecordError(BunnyCLIError):
    """A single record was rejected locally or by the platform."""

    code = "RECORD_ERROR"


class BootstrapError(BunnyCLIError):
    """A step of the branding bootstrap failed."""

    code = "BOOTSTRAP_ERROR"


class ProviderError(BunnyCLIError):
    """A foreign billing provider's API rejected a request."""

    code = "PROVIDER_ERROR"
