"""
Identity fingerprinting for verification requests.

The identity key is a SHA-256 digest over a canonical JSON encoding of the
normalized request. Normalization rules:

- issuer: surrounding whitespace trimmed, lower-cased.
- credential (string): surrounding whitespace trimmed, case preserved.
- credential (object): encoded as-is with sorted keys; nested values are
  neither trimmed nor case-folded.

Normalization only feeds the key. The compute oracle always receives the
inputs exactly as the caller supplied them.
"""

import hashlib
import json
from typing import Any, Dict, Tuple, Union

from shared.errors import InvalidInputError

Credential = Union[str, Dict[str, Any]]


def normalize_request(issuer: Any, credential: Any) -> Tuple[str, Credential]:
    """Validate and normalize an ``(issuer, credential)`` pair."""
    if not isinstance(issuer, str) or not issuer.strip():
        raise InvalidInputError("Missing issuer or credential", details={"field": "issuer"})

    if isinstance(credential, str):
        normalized_credential: Credential = credential.strip()
        if not normalized_credential:
            raise InvalidInputError("Missing issuer or credential", details={"field": "credential"})
    elif isinstance(credential, dict):
        if not credential:
            raise InvalidInputError("Missing issuer or credential", details={"field": "credential"})
        normalized_credential = credential
    else:
        raise InvalidInputError(
            "Credential must be a string or an object",
            details={"field": "credential"}
        )

    return issuer.strip().lower(), normalized_credential


def canonical_encoding(issuer: str, credential: Credential) -> bytes:
    """Encode a normalized pair with a stable field order.

    Values that cannot be represented as UTF-8 JSON (unserializable objects,
    lone surrogates) are invalid input.
    """
    try:
        return json.dumps(
            {"issuer": issuer, "credential": credential},
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False
        ).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(
            "Issuer or credential cannot be encoded",
            details={"error": str(exc)}
        )


def derive_identity_key(issuer: Any, credential: Any) -> str:
    """Derive the 64-character hex identity key for a request."""
    normalized_issuer, normalized_credential = normalize_request(issuer, credential)
    return hashlib.sha256(canonical_encoding(normalized_issuer, normalized_credential)).hexdigest()
