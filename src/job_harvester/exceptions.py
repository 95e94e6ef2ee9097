"""Exception types shared across the harvesting pipeline."""

from typing import Any, Dict, List, Optional


class HarvesterError(Exception):
    """Base exception for harvester failures."""


class ConfigurationError(HarvesterError):
    """Missing settings, unknown search target or unresolvable run identifier.

    Raised before any stage work begins; the CLI exits with status 1.
    """


class TerminalProviderError(HarvesterError):
    """Search provider refused service (quota exceeded, invalid credentials, API limit).

    Aborts the current stage run without consuming a retry.
    """


class TransientError(HarvesterError):
    """Network-class failure that is worth retrying with backoff."""


class ContentValidationError(HarvesterError):
    """Every extraction layer produced content rejected by the validation gate."""

    def __init__(self, reasons: List[str]):
        self.reasons = list(reasons)
        super().__init__(f"Failed to extract valid content: {'; '.join(self.reasons)}")


class ProviderApiError(HarvesterError):
    """A job-board platform API call failed."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        diagnostics: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.status = status
        self.diagnostics = diagnostics or {}

    @property
    def not_found(self) -> bool:
        """True for the "definitive not found" class of API errors."""
        return self.status in (404, 410)
