from enum import Enum


class SyncStatus(str, Enum):
    """Wallet sync state."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (SyncStatus.PENDING, SyncStatus.PROCESSING)
