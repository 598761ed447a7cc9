"""
Cache package for the Verification Service.

Provides the bounded in-process cache that fronts the durable store. It
holds transient copies of verification records; the durable store remains
the source of truth.
"""

from .volatile_cache import VolatileCache

__all__ = ["VolatileCache"]
