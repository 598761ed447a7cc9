"""
In-process durable store for local runs and tests.
"""

from datetime import datetime
from typing import Callable, Dict, Optional

from shared.logging import get_logger
from shared.errors import StoreError
from ..models import VerificationRecord, utcnow
from .base import VerificationStore


class MemoryVerificationStore(VerificationStore):
    """Dictionary-backed store honouring expiry and write-once semantics.

    ``fail_reads`` / ``fail_writes`` make the store behave like an
    unreachable service, raising ``StoreError`` on the affected calls.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.logger = get_logger("verification.persistence.memory")
        self.records: Dict[str, VerificationRecord] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.lookup_calls = 0
        self.insert_calls = 0
        self._clock = clock

    def set_outage(self, down: bool = True) -> None:
        """Toggle a full outage (reads and writes)."""
        self.fail_reads = down
        self.fail_writes = down

    async def lookup(self, key: str) -> Optional[VerificationRecord]:
        """Fetch the non-expired record for ``key``."""
        self.lookup_calls += 1
        if self.fail_reads:
            raise StoreError("lookup", "Store unavailable")

        record = self.records.get(key)
        if record is None or record.is_expired(self._clock()):
            return None
        return record

    async def insert(self, record: VerificationRecord) -> None:
        """Persist ``record`` unless its key already exists."""
        self.insert_calls += 1
        if self.fail_writes:
            raise StoreError("insert", "Store unavailable")

        if record.key in self.records:
            self.logger.debug("Record already stored", key_prefix=record.key[:8])
            return
        self.records[record.key] = record

    async def health_check(self) -> bool:
        """Check store health."""
        return not self.fail_reads
