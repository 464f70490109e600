"""Exception hierarchy for the sync core.

Local store failures always propagate. Remote failures are caught by the
sync engine on the immediate-write path and turned into queue items; the
queue processor and the migration service catch them too. Everything else
reaches the caller.
"""

from typing import Any, Optional


class ForkAndSpoonError(Exception):
    """Base exception for all sync core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g. "REMOTE_001")
        details: Additional context
        recoverable: Whether retrying later can succeed
    """

    default_code = "FS_000"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# ── Local store ─────────────────────────────────────────────────

class LocalStoreError(ForkAndSpoonError):
    """The on-device SQLite store rejected a read or write."""

    default_code = "STORE_001"


# ── Remote store ────────────────────────────────────────────────

class RemoteStoreError(ForkAndSpoonError):
    """A remote call failed (network, auth, constraint, ...)."""

    default_code = "REMOTE_001"

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {}) or {}
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation
        kwargs.setdefault("recoverable", True)
        super().__init__(message, details=details, **kwargs)
        self.table = table
        self.operation = operation


class RemoteNotConfiguredError(RemoteStoreError):
    """Remote access was attempted without a URL and key."""

    default_code = "REMOTE_002"

    def __init__(self, message: str = "Supabase is not configured", **kwargs):
        kwargs.setdefault("recoverable", False)
        super().__init__(message, **kwargs)


# ── Sync ────────────────────────────────────────────────────────

class SyncError(ForkAndSpoonError):
    """A sync request could not be interpreted."""

    default_code = "SYNC_001"


# ── Migration ───────────────────────────────────────────────────

class MigrationError(ForkAndSpoonError):
    """Base exception for local-to-household migration."""

    default_code = "MIGRATION_001"


class SnapshotError(MigrationError):
    """The pre-migration snapshot could not be captured or persisted."""

    default_code = "MIGRATION_002"


class RollbackError(MigrationError):
    """Rollback could not restore local state."""

    default_code = "MIGRATION_003"


# ── Import / export ─────────────────────────────────────────────

class ImportFormatError(ForkAndSpoonError):
    """A backup or import file is unreadable or invalid."""

    default_code = "IO_001"

    def __init__(self, message: str, errors: Optional[list[str]] = None, **kwargs):
        details = kwargs.pop("details", {}) or {}
        if errors:
            details["errors"] = list(errors)
        super().__init__(message, details=details, **kwargs)
        self.errors = list(errors or [])
