"""
Compute oracle for identity verification.

The oracle is the expensive, deterministic step the tiers exist to avoid.
It must not have side effects of its own; persistence and caching are the
pipeline's job.
"""

import asyncio
import hashlib
import hmac
import json
from abc import ABC, abstractmethod
from typing import Any

from shared.logging import get_logger
from ..models import ComputeResult


class VerificationOracle(ABC):
    """Maps an ``(issuer, credential)`` pair to a verification result."""

    @abstractmethod
    async def verify(self, issuer: str, credential: Any) -> ComputeResult:
        """Run verification on the inputs exactly as supplied by the caller."""


class DemoVerificationOracle(VerificationOracle):
    """Stand-in verifier with a fixed simulated latency.

    A credential is verified when the issuer is Jain University and the
    credential text mentions "student". Verified results carry an HMAC proof
    token keyed by ``secret``; rejected ones carry no proof.
    """

    TRUSTED_ISSUER = "jain university"
    VERIFIED_SCORE = 98.0
    REJECTED_SCORE = 0.0

    def __init__(self, latency_seconds: float = 1.5, secret: str = "vid-pipe-dev"):
        self.latency_seconds = latency_seconds
        self.logger = get_logger("verification.oracle.demo")
        self._secret = secret.encode("utf-8")

    async def verify(self, issuer: str, credential: Any) -> ComputeResult:
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

        verified = (
            issuer.strip().lower() == self.TRUSTED_ISSUER
            and "student" in self._credential_text(credential).lower()
        )
        self.logger.debug("Demo verification evaluated", verified=verified)

        return ComputeResult(
            verified=verified,
            trust_score=self.VERIFIED_SCORE if verified else self.REJECTED_SCORE,
            proof=self._proof(issuer, credential) if verified else None
        )

    def _proof(self, issuer: str, credential: Any) -> str:
        message = json.dumps(
            {"issuer": issuer, "credential": credential},
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False
        ).encode("utf-8")
        return "0x" + hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    @staticmethod
    def _credential_text(credential: Any) -> str:
        if isinstance(credential, dict):
            return str(credential.get("id", ""))
        return str(credential)
