from .enums import ErrorKind, SessionStatus, RequestVariant, RequestState, PollState
from .errors import ClaimAttestError
from .models import (
    Context,
    ClaimInfo,
    CompleteClaimData,
    SignedClaim,
    WitnessEntry,
    Proof,
    ProofRequestOptions,
    TemplateData,
    StatusUrlResponse,
)

__all__ = [
    "ErrorKind",
    "SessionStatus",
    "RequestVariant",
    "RequestState",
    "PollState",
    "ClaimAttestError",
    "Context",
    "ClaimInfo",
    "CompleteClaimData",
    "SignedClaim",
    "WitnessEntry",
    "Proof",
    "ProofRequestOptions",
    "TemplateData",
    "StatusUrlResponse",
]
