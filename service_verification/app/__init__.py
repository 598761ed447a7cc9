"""
Verification Service package for VID-Pipe.

The service answers "has this exact request already been verified?" by
layering a volatile in-process cache over a durable store and falling back
to the compute oracle only on a full miss.

Structure:
- app.main: FastAPI app, routes and lifecycle wiring.
- app.fingerprint: request normalization and identity keys.
- app.cache: bounded LRU + TTL volatile cache.
- app.persistence: durable store contract and adapters.
- app.oracle: compute oracle contract and the demo verifier.
- app.pipeline: the tiered lookup / compute / write-back orchestrator.
"""
