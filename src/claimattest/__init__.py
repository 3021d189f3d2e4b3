from .core.request import ProofRequest
from .core.session import CancellationToken, SessionRegistry
from .core.verification import verify_proof, transform_for_onchain
from .crypto.signing import EthSigner
from .witness.resolver import Beacon, StaticBeacon, WitnessResolver, HashWitnessSelector
from .protocol import (
    ClaimAttestError,
    ErrorKind,
    SessionStatus,
    RequestVariant,
    Context,
    Proof,
    ProofRequestOptions,
)

__version__ = "0.3.0"

__all__ = [
    "ProofRequest",
    "CancellationToken",
    "SessionRegistry",
    "verify_proof",
    "transform_for_onchain",
    "EthSigner",
    "Beacon",
    "StaticBeacon",
    "WitnessResolver",
    "HashWitnessSelector",
    "ClaimAttestError",
    "ErrorKind",
    "SessionStatus",
    "RequestVariant",
    "Context",
    "Proof",
    "ProofRequestOptions",
]
