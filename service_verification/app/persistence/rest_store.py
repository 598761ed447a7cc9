"""
PostgREST-backed durable store for verification records.

Talks to a Supabase-style REST endpoint (``<url>/rest/v1/<table>``). The
table is expected to carry a unique ``hash`` column plus ``verified``,
``trust_score``, ``proof_signature``, ``created_at`` and ``expires_at``.
"""

from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from shared.logging import get_logger
from shared.errors import StoreError
from ..models import VerificationRecord, utcnow
from .base import VerificationStore


class RestVerificationStore(VerificationStore):
    """Durable store client over the PostgREST protocol."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "identity_verifications",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not base_url or not api_key:
            raise ValueError("REST store requires both a base URL and an API key")

        self.base_url = base_url.rstrip('/')
        self.table = table
        self.timeout = timeout
        self.logger = get_logger("verification.persistence.rest")
        self._api_key = api_key
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self):
        """Open the HTTP client."""
        if self._client is not None:
            return

        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            headers={
                "apikey": self._api_key,
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json"
            },
            timeout=self.timeout,
            transport=self._transport
        )
        self.logger.info("REST store started", base_url=self.base_url, table=self.table)

    async def stop(self):
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self.logger.info("REST store stopped")

    async def lookup(self, key: str) -> Optional[VerificationRecord]:
        """Fetch the non-expired record for ``key``."""
        now = utcnow()
        params = {
            "select": "*",
            "hash": f"eq.{key}",
            "or": f"(expires_at.is.null,expires_at.gt.{self._format_timestamp(now)})",
            "limit": "1"
        }
        response = await self._request("lookup", "GET", params=params)

        if response.status_code != 200:
            raise StoreError(
                "lookup",
                f"Unexpected status {response.status_code}",
                details={"status_code": response.status_code, "body": response.text}
            )

        try:
            rows = response.json()
        except ValueError as exc:
            raise StoreError("lookup", "Malformed response body", details={"error": str(exc)})

        if not rows:
            return None

        record = self._row_to_record(rows[0])
        # Guard against clock skew between us and the store
        if record.is_expired(now):
            return None

        return record

    async def insert(self, record: VerificationRecord) -> None:
        """Persist ``record``; an existing key is left untouched."""
        response = await self._request(
            "insert",
            "POST",
            params={"on_conflict": "hash"},
            json=[self._record_to_row(record)],
            headers={"Prefer": "resolution=ignore-duplicates,return=minimal"}
        )

        if response.status_code == 409:
            self.logger.debug("Record already stored", key_prefix=record.key[:8])
            return

        if response.status_code not in (200, 201, 204):
            raise StoreError(
                "insert",
                f"Write rejected with status {response.status_code}",
                details={"status_code": response.status_code, "body": response.text}
            )

        self.logger.debug("Record stored", key_prefix=record.key[:8])

    async def health_check(self) -> bool:
        """Check store health."""
        try:
            response = await self._request("health", "GET", params={"select": "hash", "limit": "1"})
            return response.status_code == 200
        except StoreError:
            return False

    async def _request(self, operation: str, method: str, **kwargs) -> httpx.Response:
        """Issue a request against the table, mapping transport faults to ``StoreError``."""
        if self._client is None:
            raise StoreError(operation, "Store client not started")

        try:
            return await self._client.request(method, f"/{self.table}", **kwargs)
        except httpx.HTTPError as exc:
            self.logger.warning("Store request failed", operation=operation, error=str(exc))
            raise StoreError(operation, str(exc) or exc.__class__.__name__)

    @staticmethod
    def _format_timestamp(value: datetime) -> str:
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")

    @staticmethod
    def _record_to_row(record: VerificationRecord) -> Dict[str, Any]:
        """Convert a record to a table row."""
        data = record.model_dump(mode="json")
        return {
            "hash": data["key"],
            "verified": data["verified"],
            "trust_score": data["trust_score"],
            "proof_signature": data["proof"],
            "created_at": data["created_at"],
            "expires_at": data["expires_at"]
        }

    @staticmethod
    def _row_to_record(row: Dict[str, Any]) -> VerificationRecord:
        """Convert a table row to a record."""
        try:
            return VerificationRecord(
                key=row["hash"],
                verified=row["verified"],
                trust_score=row.get("trust_score"),
                proof=row.get("proof_signature"),
                created_at=row.get("created_at") or utcnow(),
                expires_at=row.get("expires_at")
            )
        except (KeyError, ValueError) as exc:
            raise StoreError("lookup", "Malformed record", details={"error": str(exc)})
