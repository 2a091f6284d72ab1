"""Domain exceptions for the catalog sync engine."""


class SyncError(Exception):
    """Base class for sync engine errors."""


class SyncConflictError(SyncError):
    """The scope is already claimed by another session."""

    def __init__(self, session_id: str | None, message: str):
        super().__init__(message)
        self.session_id = session_id


class SyncAlreadyRunningError(SyncConflictError):
    def __init__(self, session_id: str | None):
        super().__init__(session_id, f"A sync is already in progress (session {session_id})")


class SyncPausedError(SyncConflictError):
    def __init__(self, session_id: str | None):
        super().__init__(
            session_id,
            f"Sync session {session_id} is paused; resume or stop it first",
        )


class SyncFinishingError(SyncConflictError):
    """The session is reconciling stock and can no longer be paused or stopped."""

    def __init__(self, session_id: str | None):
        super().__init__(session_id, f"Sync session {session_id} is finishing its stock pass")


class SyncNotPausedError(SyncError):
    """Resume was requested but no paused session exists for the scope."""


class ProfileNotFoundError(SyncError):
    """The requested sync profile does not exist."""


class CatalogApiError(SyncError):
    """The external catalog API returned an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
