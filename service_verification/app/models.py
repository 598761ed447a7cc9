"""
Data models for the Verification Service.
"""

from typing import Any, Optional
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class TierSource(str, Enum):
    """Tier that served a verification."""
    VOLATILE_CACHE = "VOLATILE_CACHE"
    DURABLE_STORE = "DURABLE_STORE"
    COMPUTED = "COMPUTED"


TIER_MESSAGES = {
    TierSource.VOLATILE_CACHE: "Identity retrieved from cache",
    TierSource.DURABLE_STORE: "Retrieved from persistent storage",
}


class VerificationRecord(BaseModel):
    """Durable verification result. Immutable once written."""

    model_config = ConfigDict(frozen=True)

    key: str
    verified: bool
    trust_score: Optional[float] = None
    proof: Any = None
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    @field_validator("created_at", "expires_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Whether the record's expiry is at or before ``now``."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())


@dataclass
class CacheEntry:
    """Volatile cache slot."""
    key: str
    value: VerificationRecord
    inserted_at: float
    last_accessed: float
    expires_at: float


@dataclass(frozen=True)
class ComputeResult:
    """Output of the compute oracle."""
    verified: bool
    trust_score: Optional[float] = None
    proof: Any = None


class CheckRequest(BaseModel):
    """Request model for ``POST /check``.

    Both fields are optional at the schema level so that missing values
    surface as an ``InvalidInputError`` rather than a framework 422.
    """
    issuer: Optional[Any] = Field(None, description="Credential issuer")
    credential: Optional[Any] = Field(None, description="Credential string or object")


class VerificationEnvelope(BaseModel):
    """Per-request verification result, tagged with the serving tier."""
    success: bool
    verified: bool = False
    trust_score: Optional[float] = None
    proof: Any = None
    source: Optional[TierSource] = None
    message: Optional[str] = None
    key: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_record(cls, record: VerificationRecord, source: TierSource) -> "VerificationEnvelope":
        """Build a successful envelope from a record served by ``source``."""
        if source is TierSource.COMPUTED:
            message = (
                "New identity verified & cached"
                if record.verified
                else "Identity verification failed"
            )
        else:
            message = TIER_MESSAGES[source]

        return cls(
            success=True,
            verified=record.verified,
            trust_score=record.trust_score,
            proof=record.proof,
            source=source,
            message=message,
            key=record.key
        )
