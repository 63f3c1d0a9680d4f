"""Exceptions raised by the sync subsystem."""


class IngestionError(Exception):
    """Base class for sync subsystem errors."""


class SyncInProgressError(IngestionError):
    """A sync pass was requested while another one is still running."""

    def __init__(self, message: str = "A sync is already in progress") -> None:
        super().__init__(message)


class NoActiveSourcesError(IngestionError):
    """No active sources are configured for the requested run."""

    def __init__(self, message: str = "No active sources configured") -> None:
        super().__init__(message)


class SyncConflictError(IngestionError):
    """A manual sync was requested while one is already queued."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"A sync job is already queued: {job_id}")


class JobNotFoundError(IngestionError):
    """No sync job exists with the given id."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Sync job not found: {job_id}")


class JobStateError(IngestionError):
    """A job operation is not allowed in the job's current status."""


class SourceNotFoundError(IngestionError):
    """No source exists with the given id."""

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        super().__init__(f"Source not found: {source_id}")


class ReviewStateError(IngestionError):
    """A review decision is not allowed for the queue item."""


class ReviewItemNotFoundError(IngestionError):
    """No review queue item exists with the given id."""

    def __init__(self, queue_id: str) -> None:
        self.queue_id = queue_id
        super().__init__(f"Review queue item not found: {queue_id}")
