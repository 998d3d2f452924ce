"""
Batch definition for migration runs
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

from gsmt.core.config import PoolConfig
from gsmt.core.source import FileRecord


@dataclass(frozen=True)
class TransferBatch:
    """The records of one run plus the concurrency bound; never persisted"""
    records: Tuple[FileRecord, ...]
    concurrency: int = PoolConfig.DEFAULT_CONCURRENCY

    def __post_init__(self):
        if isinstance(self.concurrency, bool) or not isinstance(self.concurrency, int):
            raise ValueError(f"concurrency must be an integer, got {self.concurrency!r}")
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be positive, got {self.concurrency}")

    @classmethod
    def of(cls, records: Sequence[FileRecord], concurrency: int) -> "TransferBatch":
        return cls(tuple(records), concurrency)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def workers(self) -> int:
        """Worker slots actually needed; all records start at once when fewer"""
        return max(1, min(self.concurrency, len(self.records)))
