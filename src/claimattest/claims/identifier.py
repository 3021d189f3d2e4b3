"""
Claim identifiers and the three signing payload shapes.

The payload shapes must never be interchanged:

- ``app_authorization_payload``: canonical ``{providerId, timestamp}``,
  signed by the application (hashed, then personal-signed).
- ``requested_claims_payload``: canonical requested-claims structure,
  signed by the application for STANDARD requests.
- ``claim_sign_data``: raw newline-joined claim digest, personal-signed by
  witnesses. Not canonicalized.
"""

from __future__ import annotations

import json
from typing import Any, Union

from claimattest.crypto.signing import keccak256_hex
from claimattest.protocol.enums import ErrorKind
from claimattest.protocol.errors import ClaimAttestError
from claimattest.protocol.models import ClaimInfo, CompleteClaimData, RequestedProofs
from claimattest.utils.canonical import canonicalize, canonicalize_str


def canonical_parameters(parameters: Union[dict, str]) -> str:
    """Canonical text of claim parameters; a JSON string is parsed first."""
    if isinstance(parameters, str):
        try:
            parameters = json.loads(parameters)
        except ValueError as e:
            raise ClaimAttestError(
                "Claim parameters string must be JSON", ErrorKind.ENCODING_ERROR, e
            ) from e
    return canonicalize_str(parameters)


def canonical_context(context: str) -> str:
    """JSON contexts are re-canonicalized; any other string is used verbatim."""
    if not context:
        return ""
    try:
        parsed = json.loads(context)
    except ValueError:
        return context
    return canonicalize_str(parsed)


def derive_identifier(claim_info: Union[ClaimInfo, CompleteClaimData]) -> str:
    """Keccak-256 of the canonical ``{provider, parameters, context}`` triple."""
    triple = {
        "provider": claim_info.provider,
        "parameters": canonical_parameters(claim_info.parameters),
        "context": canonical_context(claim_info.context),
    }
    return keccak256_hex(canonicalize(triple))


def normalize_identifier(identifier: Any) -> str:
    """Strip stray quote characters from an externally supplied identifier."""
    if not isinstance(identifier, str):
        raise ClaimAttestError(
            f"Claim identifier must be a string, got {type(identifier).__name__}",
            ErrorKind.IDENTITY_MISMATCH,
        )
    return identifier.replace('"', "").replace("'", "").strip().lower()


def assert_identifier_matches(claim_info: Union[ClaimInfo, CompleteClaimData], stated: Any) -> str:
    calculated = derive_identifier(claim_info)
    if calculated != normalize_identifier(stated):
        raise ClaimAttestError(
            f"Identifier Mismatch: calculated {calculated}, proof states {stated}",
            ErrorKind.IDENTITY_MISMATCH,
        )
    return calculated


def app_authorization_payload(provider_id: str, timestamp: str) -> bytes:
    return canonicalize({"providerId": provider_id, "timestamp": timestamp})


def requested_claims_payload(requested_proofs: RequestedProofs) -> bytes:
    return canonicalize(requested_proofs.to_dict())


def claim_sign_data(claim: CompleteClaimData) -> bytes:
    lines = [
        normalize_identifier(claim.identifier),
        claim.owner.lower(),
        str(claim.timestamp_s),
        str(claim.epoch),
    ]
    return "\n".join(lines).encode("utf-8")
