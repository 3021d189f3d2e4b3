from .request import ProofRequest, encode_template
from .session import CancellationToken, SessionPoller, SessionRegistry, default_registry
from .settings import ClaimAttestSettings, get_settings
from .verification import verify_proof, assert_valid_proof, transform_for_onchain

__all__ = [
    "ProofRequest",
    "encode_template",
    "CancellationToken",
    "SessionPoller",
    "SessionRegistry",
    "default_registry",
    "ClaimAttestSettings",
    "get_settings",
    "verify_proof",
    "assert_valid_proof",
    "transform_for_onchain",
]
