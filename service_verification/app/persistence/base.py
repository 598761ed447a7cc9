"""
Durable store contract for verification records.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..models import VerificationRecord


class VerificationStore(ABC):
    """Append-only key -> record store.

    ``lookup`` treats expired records exactly like absent ones. ``insert`` is
    write-once: inserting an existing key leaves the stored record untouched
    and is not an error. Both raise ``StoreError`` when the store cannot be
    reached or rejects the call.
    """

    async def start(self) -> None:
        """Acquire connections."""

    async def stop(self) -> None:
        """Release connections."""

    @abstractmethod
    async def lookup(self, key: str) -> Optional[VerificationRecord]:
        """Fetch the non-expired record for ``key``."""

    @abstractmethod
    async def insert(self, record: VerificationRecord) -> None:
        """Persist ``record`` unless its key already exists."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check store health."""
