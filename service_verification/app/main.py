"""
Verification service for VID-Pipe.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import Response
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig

from .cache.volatile_cache import VolatileCache
from .models import CheckRequest, VerificationEnvelope
from .oracle.verifier import DemoVerificationOracle, VerificationOracle
from .persistence import MemoryVerificationStore, RestVerificationStore, VerificationStore
from .pipeline.orchestrator import VerificationOrchestrator


SOURCE_HEADER = "X-Source"


class VerificationService(BaseService):
    """Verification service implementation.

    The store, oracle and cache are owned here and injected into the
    orchestrator; callers may supply their own for tests or embedding.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[VerificationStore] = None,
        oracle: Optional[VerificationOracle] = None,
        cache: Optional[VolatileCache] = None
    ):
        super().__init__("verification", 3000, config)

        self.store = store if store is not None else self._build_store()
        self.oracle = oracle if oracle is not None else DemoVerificationOracle(
            latency_seconds=self.config.compute_latency_seconds,
            secret=self.config.proof_secret
        )
        self.cache = cache if cache is not None else VolatileCache(
            max_size=self.config.cache_max_size,
            ttl_seconds=self.config.cache_ttl_seconds
        )
        self.orchestrator = VerificationOrchestrator(
            self.cache,
            self.store,
            self.oracle,
            record_ttl_seconds=self.config.record_ttl_seconds,
            compute_timeout_seconds=self.config.compute_timeout_seconds,
            coalesce_inflight=self.config.coalesce_inflight,
            metrics=self.metrics
        )

        self._setup_verification_routes()

    def _build_store(self) -> VerificationStore:
        """Construct the durable store selected by configuration."""
        backend = self.config.store_backend.lower()
        if backend == "rest":
            return RestVerificationStore(
                self.config.store_url,
                self.config.store_key,
                table=self.config.store_table,
                timeout=self.config.store_timeout_seconds
            )
        if backend == "memory":
            self.logger.warning("Using in-memory durable store; records will not survive restarts")
            return MemoryVerificationStore()
        raise ValueError(f"Unknown store backend: {self.config.store_backend!r}")

    def _setup_verification_routes(self):
        """Set up verification-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "verification",
                "message": "VID-Pipe - Verification Service",
                "version": "1.0.0",
                "tiers": ["VOLATILE_CACHE", "DURABLE_STORE", "COMPUTED"]
            }

        @self.app.post("/check", response_model=VerificationEnvelope)
        async def check(request: CheckRequest, response: Response):
            """Verify an issuer/credential pair, serving from the cheapest tier."""
            envelope = await self.orchestrator.check(request.issuer, request.credential)
            response.headers[SOURCE_HEADER] = envelope.source.value
            return envelope

        @self.app.get("/check/{key}", response_model=VerificationEnvelope)
        async def lookup(key: str, response: Response):
            """Report a previously verified identity key without computing."""
            envelope = await self.orchestrator.lookup(key)
            if envelope is None:
                return JSONResponse(status_code=404, content={"error": "Identity key not found", "code": "NOT_FOUND"})
            response.headers[SOURCE_HEADER] = envelope.source.value
            return envelope

        @self.app.get("/stats")
        async def get_stats():
            """Get verification service statistics."""
            stats = self.orchestrator.stats()
            stats["store_backend"] = self.store.__class__.__name__
            stats["timestamp"] = datetime.now(timezone.utc).isoformat()
            return stats

    async def _check_dependencies(self):
        """Check verification service dependencies."""
        try:
            healthy = await self.store.health_check()
        except Exception as exc:
            self.logger.warning("Store health check failed", error=str(exc))
            healthy = False
        return {"durable_store": "ok" if healthy else "error"}

    async def start(self):
        """Start verification service components."""
        await self.store.start()
        self.logger.info(
            "Verification service started",
            store=self.store.__class__.__name__,
            cache_max_size=self.cache.max_size,
            cache_ttl_seconds=self.cache.ttl_seconds
        )

    async def stop(self):
        """Stop verification service components."""
        await self.orchestrator.drain()
        await self.store.stop()
        self.logger.info("Verification service stopped")


def create_app(config: Optional[ServiceConfig] = None):
    """Create verification service application."""
    service = VerificationService(config)
    return service.app


if __name__ == "__main__":
    service = VerificationService()
    service.run()
