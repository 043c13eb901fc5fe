from dataclasses import dataclass, fields


@dataclass
class QueueStats:
    """Job counts of one queue, by status.

    ``scheduled`` counts the queued jobs that are not due yet, so it is
    included in ``queued``.
    """

    name: str
    total: int
    queued: int
    scheduled: int
    claimed: int
    success: int
    failed: int
    expired: int
    exhausted: int
    cancelled: int

    @staticmethod
    def from_row(row: tuple) -> "QueueStats":
        """Build from a row holding the queue name and counts in field order."""
        if len(row) != len(fields(QueueStats)):
            raise ValueError(f"Expected {len(fields(QueueStats))} columns, got {len(row)}")
        name, *counts = row
        return QueueStats(name, *(int(count or 0) for count in counts))
