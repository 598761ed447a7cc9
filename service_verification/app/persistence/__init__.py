"""
Persistence package for the Verification Service.

- base: the durable store contract.
- rest_store: PostgREST (Supabase-style) client over httpx.
- memory_store: in-process store for local runs and tests.
"""

from .base import VerificationStore
from .memory_store import MemoryVerificationStore
from .rest_store import RestVerificationStore

__all__ = ["VerificationStore", "MemoryVerificationStore", "RestVerificationStore"]
