"""
invAD Error Kinds
=================

Every failure the pipeline distinguishes has its own exception type so the
runner can decide what to skip and what to abort. Warnings (malformed
identifiers, truncated membership branches) are recorded as instances of the
same classes instead of being raised past the stage that found them.
"""


class InventoryError(Exception):
    """Base class for invAD errors."""

    kind = "error"

    def __init__(self, message: str, subject: str = ""):
        super().__init__(message)
        self.message = message
        self.subject = subject


class DirectoryUnavailable(InventoryError):
    """The directory query adapter could not return a complete record set."""

    kind = "directory_unavailable"


class MalformedIdentifier(InventoryError):
    """A distinguished name could not be split into components."""

    kind = "malformed_identifier"


class MembershipDepthExceeded(InventoryError):
    """A nested-group branch went deeper than the configured cap."""

    kind = "membership_depth_exceeded"

    def __init__(self, message: str, subject: str = "", seed: str = "", depth: int = 0):
        super().__init__(message, subject)
        self.seed = seed
        self.depth = depth


class MissingDataset(InventoryError):
    """A persisted dataset requested for reload does not exist or is unreadable."""

    kind = "missing_dataset"


class UnsupportedFormatBackend(InventoryError):
    """The library needed for an output format is not available."""

    kind = "unsupported_format_backend"


class PipelineCancelled(InventoryError):
    """A scope pipeline was cancelled or ran past its deadline."""

    kind = "cancelled"


class OutputFailed(InventoryError):
    """An exporter raised an unexpected error while writing one output."""

    kind = "output_failed"
