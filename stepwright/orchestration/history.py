"""
Bounded, append-only ledger of finished executions.
"""

import asyncio
from collections import OrderedDict
from typing import Dict, List, Optional

from stepwright.core.types import ExecutionRecord, ExecutionSummary
from stepwright.error_handling import ExecutionNotFound
from stepwright.monitoring.logger import get_logger

logger = get_logger(__name__)


class ExecutionHistoryStore:
    """
    Keeps the most recent execution records in insertion order.

    Once the cap is exceeded the oldest records are evicted first. Records
    are indexed by execution id.
    """

    def __init__(self, cap: int = 100):
        if cap < 1:
            raise ValueError("History cap must be at least 1")
        self.cap = cap
        self._records: "OrderedDict[str, ExecutionRecord]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._evicted = 0

    async def append(self, record: ExecutionRecord) -> None:
        async with self._lock:
            if record.execution_id in self._records:
                # Re-appending moves the record to the newest position
                del self._records[record.execution_id]
            self._records[record.execution_id] = record

            while len(self._records) > self.cap:
                evicted_id, _ = self._records.popitem(last=False)
                self._evicted += 1
                logger.debug("Evicted execution from history", extra={"execution_id": evicted_id})

    def get(self, execution_id: str) -> ExecutionRecord:
        """Full record including artifact references."""
        record = self._records.get(execution_id)
        if record is None:
            raise ExecutionNotFound(execution_id)
        return record

    def find(self, execution_id: str) -> Optional[ExecutionRecord]:
        return self._records.get(execution_id)

    def list_summaries(self, limit: Optional[int] = None) -> List[ExecutionSummary]:
        """Newest first, artifacts reduced to presence markers."""
        records = list(reversed(self._records.values()))
        if limit is not None:
            records = records[:limit]
        return [record.summary() for record in records]

    def records(self) -> List[ExecutionRecord]:
        """All records, oldest first."""
        return list(self._records.values())

    def ids(self) -> List[str]:
        return list(self._records.keys())

    def get_statistics(self) -> Dict[str, int]:
        passed = sum(1 for r in self._records.values() if r.status == "passed")
        return {
            "size": len(self._records),
            "cap": self.cap,
            "passed": passed,
            "failed": len(self._records) - passed,
            "evicted": self._evicted,
        }

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, execution_id: str) -> bool:
        return execution_id in self._records
