from .identifier import (
    derive_identifier,
    normalize_identifier,
    assert_identifier_matches,
    app_authorization_payload,
    requested_claims_payload,
    claim_sign_data,
)

__all__ = [
    "derive_identifier",
    "normalize_identifier",
    "assert_identifier_matches",
    "app_authorization_payload",
    "requested_claims_payload",
    "claim_sign_data",
]
