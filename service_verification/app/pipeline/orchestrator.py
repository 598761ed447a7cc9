"""
Tiered verification pipeline.

Lookup order is fixed: volatile cache, then durable store, then the compute
oracle. Store hits are promoted into the cache; computed results are cached
immediately and persisted by a tracked background task. Durable store
failures degrade the pipeline to "compute every time" and are never
surfaced to the caller. Failed computations are never cached.
"""

import asyncio
import re
import time
from datetime import timedelta
from typing import Any, Dict, Optional, Set, TYPE_CHECKING

from shared.logging import get_logger, set_identity_key
from shared.errors import (
    ComputeError,
    ComputeTimeoutError,
    InternalPipelineError,
    InvalidInputError,
    StoreError,
    VidPipeException,
)
from ..cache.volatile_cache import VolatileCache
from ..fingerprint import derive_identity_key
from ..models import TierSource, VerificationEnvelope, VerificationRecord, utcnow
from ..oracle.verifier import VerificationOracle
from ..persistence.base import VerificationStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


IDENTITY_KEY_PATTERN = re.compile(r"^[0-9a-f]{64}$")


class VerificationOrchestrator:
    """Coordinates fingerprinting, tiered lookup, compute and write-back."""

    def __init__(
        self,
        cache: VolatileCache,
        store: VerificationStore,
        oracle: VerificationOracle,
        *,
        record_ttl_seconds: int = 86400,
        compute_timeout_seconds: float = 10.0,
        coalesce_inflight: bool = False,
        metrics: Optional["MetricsCollector"] = None
    ):
        self.cache = cache
        self.store = store
        self.oracle = oracle
        self.record_ttl_seconds = record_ttl_seconds
        self.compute_timeout_seconds = compute_timeout_seconds
        self.coalesce_inflight = coalesce_inflight
        self.metrics = metrics
        self.logger = get_logger("verification.pipeline")

        self._pending_writes: Set["asyncio.Task[None]"] = set()
        self._inflight: Dict[str, "asyncio.Future[VerificationRecord]"] = {}

    @property
    def pending_writes(self) -> int:
        """Background store writes not yet finished."""
        return len(self._pending_writes)

    async def check(self, issuer: Any, credential: Any) -> VerificationEnvelope:
        """Answer a verification request from the cheapest tier that can.

        Raises ``InvalidInputError`` before any I/O for missing fields,
        ``ComputeError`` (or ``ComputeTimeoutError``) when the oracle fails
        and ``InternalPipelineError`` for any other fault.
        """
        key = derive_identity_key(issuer, credential)
        set_identity_key(key)

        try:
            record = self.cache.get(key)
            if record is not None:
                self.logger.info("Cache hit", tier=TierSource.VOLATILE_CACHE.value)
                return self._served(record, TierSource.VOLATILE_CACHE)

            record = await self._probe_store(key)
            if record is not None:
                self._promote(record)
                self.logger.info("Store hit", tier=TierSource.DURABLE_STORE.value)
                return self._served(record, TierSource.DURABLE_STORE)

            if self.coalesce_inflight:
                record = await self._compute_coalesced(key, issuer, credential)
            else:
                record = await self._compute(key, issuer, credential)
            return self._served(record, TierSource.COMPUTED)

        except (ComputeError, InternalPipelineError) as exc:
            self._record_failure(exc)
            raise
        except Exception as exc:
            self.logger.error("Verification pipeline fault", error=str(exc), exc_info=True)
            failure = InternalPipelineError(details={"error_type": exc.__class__.__name__})
            self._record_failure(failure)
            raise failure from exc

    async def lookup(self, key: str) -> Optional[VerificationEnvelope]:
        """Probe the cache and store tiers for ``key`` without computing."""
        if not isinstance(key, str) or not IDENTITY_KEY_PATTERN.match(key):
            raise InvalidInputError("Identity key must be a 64-character hex digest", details={"field": "key"})

        set_identity_key(key)
        record = self.cache.get(key)
        if record is not None:
            return self._served(record, TierSource.VOLATILE_CACHE)

        record = await self._probe_store(key)
        if record is not None:
            self._promote(record)
            return self._served(record, TierSource.DURABLE_STORE)

        return None

    async def drain(self) -> None:
        """Wait for every pending background write to finish."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    def stats(self) -> Dict[str, Any]:
        """Get pipeline statistics."""
        return {
            "cache": self.cache.stats(),
            "pending_writes": self.pending_writes,
            "inflight_computations": len(self._inflight),
            "coalesce_inflight": self.coalesce_inflight,
            "record_ttl_seconds": self.record_ttl_seconds,
            "compute_timeout_seconds": self.compute_timeout_seconds
        }

    async def _probe_store(self, key: str) -> Optional[VerificationRecord]:
        try:
            return await self.store.lookup(key)
        except StoreError as exc:
            self.logger.warning("Store lookup failed; treating as miss", error=exc.message)
            self._record_store_failure("lookup")
            return None

    def _promote(self, record: VerificationRecord) -> None:
        self.cache.set(record.key, record)
        self._update_cache_gauge()

    async def _compute(self, key: str, issuer: Any, credential: Any) -> VerificationRecord:
        """Run the oracle on the caller's original inputs and populate both tiers."""
        self.logger.info("Computing verification")
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self.oracle.verify(issuer, credential),
                timeout=self.compute_timeout_seconds
            )
        except asyncio.TimeoutError:
            self.logger.warning("Verification compute timed out", timeout_seconds=self.compute_timeout_seconds)
            raise ComputeTimeoutError(self.compute_timeout_seconds)
        except VidPipeException:
            raise
        except Exception as exc:
            self.logger.error("Verification compute failed", error=str(exc))
            raise ComputeError(details={"error_type": exc.__class__.__name__}) from exc
        finally:
            duration = time.perf_counter() - start
            if self.metrics:
                self.metrics.observe_histogram("verification_compute_duration_seconds", duration)

        now = utcnow()
        record = VerificationRecord(
            key=key,
            verified=result.verified,
            trust_score=result.trust_score,
            proof=result.proof,
            created_at=now,
            expires_at=now + timedelta(seconds=self.record_ttl_seconds) if self.record_ttl_seconds else None
        )

        self._schedule_write(record)
        self._promote(record)
        self.logger.info(
            "Verification computed",
            verified=record.verified,
            duration_ms=round(duration * 1000, 2)
        )
        return record

    async def _compute_coalesced(self, key: str, issuer: Any, credential: Any) -> VerificationRecord:
        """Share one in-flight computation between concurrent identical misses."""
        existing = self._inflight.get(key)
        if existing is not None:
            self.logger.debug("Joining in-flight verification")
            try:
                return await asyncio.shield(existing)
            except asyncio.CancelledError:
                if existing.cancelled():
                    raise InternalPipelineError("In-flight verification was cancelled")
                raise

        future: "asyncio.Future[VerificationRecord]" = asyncio.get_running_loop().create_future()
        # Followers may never arrive to consume a failure
        future.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._inflight[key] = future
        try:
            record = await self._compute(key, issuer, credential)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(record)
            return record
        finally:
            self._inflight.pop(key, None)

    def _schedule_write(self, record: VerificationRecord) -> None:
        """Persist ``record`` in the background; the response never waits on it."""
        task = asyncio.create_task(self.store.insert(record))
        self._pending_writes.add(task)
        task.add_done_callback(self._on_write_done)

    def _on_write_done(self, task: "asyncio.Task[None]") -> None:
        self._pending_writes.discard(task)

        if task.cancelled():
            self.logger.warning("Background store write cancelled")
            return

        exc = task.exception()
        if exc is None:
            self.logger.debug("Record persisted")
            return

        if isinstance(exc, StoreError):
            self.logger.warning("Background store write failed", error=exc.message)
        else:
            self.logger.error(
                "Unexpected error in background store write",
                error=str(exc),
                error_type=exc.__class__.__name__
            )
        self._record_store_failure("insert")

    def _served(self, record: VerificationRecord, source: TierSource) -> VerificationEnvelope:
        if self.metrics:
            self.metrics.increment_counter("verification_requests_total", source=source.value)
        return VerificationEnvelope.from_record(record, source)

    def _record_failure(self, exc: VidPipeException) -> None:
        if self.metrics:
            self.metrics.increment_counter("verification_failures_total", error_code=exc.code)

    def _record_store_failure(self, operation: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("store_failures_total", operation=operation)

    def _update_cache_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("volatile_cache_entries", len(self.cache))
