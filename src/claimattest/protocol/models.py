# FILE: src/claimattest/protocol/models.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .enums import ErrorKind, RequestVariant, SessionStatus
from .errors import ClaimAttestError

MANUAL_VERIFY_URL = "manual-verify"

Parameters = Union[Dict[str, str], str]


def _require(data: Dict[str, Any], key: str, where: str) -> Any:
    if not isinstance(data, dict):
        raise ClaimAttestError(
            f"{where} must be a JSON object, got {type(data).__name__}",
            ErrorKind.INVALID_PARAM,
        )
    if key not in data or data[key] is None:
        raise ClaimAttestError(f"{where} is missing '{key}'", ErrorKind.INVALID_PARAM)
    return data[key]


def _require_str(data: Dict[str, Any], key: str, where: str) -> str:
    value = _require(data, key, where)
    if not isinstance(value, str):
        raise ClaimAttestError(
            f"{where} '{key}' must be a string, got {type(value).__name__}",
            ErrorKind.INVALID_PARAM,
        )
    return value


# -------------------------
# CLAIMS
# -------------------------

@dataclass
class Context:
    contextAddress: str = "0x0"
    contextMessage: str = "sample message"

    def to_dict(self) -> Dict[str, str]:
        return {
            "contextAddress": self.contextAddress,
            "contextMessage": self.contextMessage,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Context":
        return cls(
            contextAddress=_require_str(data, "contextAddress", "context"),
            contextMessage=_require_str(data, "contextMessage", "context"),
        )


@dataclass
class ClaimInfo:
    provider: str
    parameters: Parameters
    context: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "parameters": self.parameters,
            "context": self.context,
        }


@dataclass
class CompleteClaimData:
    """Claim info plus the attestation envelope (owner, time, epoch, identifier)."""

    provider: str
    parameters: Parameters
    context: str
    owner: str
    timestamp_s: int
    epoch: int
    identifier: str

    @property
    def claim_info(self) -> ClaimInfo:
        return ClaimInfo(
            provider=self.provider,
            parameters=self.parameters,
            context=self.context,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "parameters": self.parameters,
            "context": self.context,
            "owner": self.owner,
            "timestampS": self.timestamp_s,
            "epoch": self.epoch,
            "identifier": self.identifier,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompleteClaimData":
        try:
            timestamp_s = int(_require(data, "timestampS", "claimData"))
            epoch = int(_require(data, "epoch", "claimData"))
        except (TypeError, ValueError) as e:
            raise ClaimAttestError(
                "claimData timestampS/epoch must be integers", ErrorKind.INVALID_PARAM, e
            ) from e
        parameters = _require(data, "parameters", "claimData")
        if not isinstance(parameters, (dict, str)):
            raise ClaimAttestError(
                "claimData 'parameters' must be an object or a string", ErrorKind.INVALID_PARAM
            )
        context = data.get("context") or ""
        if not isinstance(context, str):
            raise ClaimAttestError("claimData 'context' must be a string", ErrorKind.INVALID_PARAM)
        return cls(
            provider=_require_str(data, "provider", "claimData"),
            parameters=parameters,
            context=context,
            owner=_require_str(data, "owner", "claimData"),
            timestamp_s=timestamp_s,
            epoch=epoch,
            identifier=_require_str(data, "identifier", "claimData"),
        )


@dataclass
class SignedClaim:
    claim: CompleteClaimData
    signatures: List[bytes] = field(default_factory=list)


@dataclass(frozen=True)
class WitnessEntry:
    id: str
    url: str

    @property
    def is_manual_verify(self) -> bool:
        return self.url == MANUAL_VERIFY_URL

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "url": self.url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WitnessEntry":
        return cls(
            id=_require(data, "id", "witness"),
            url=data.get("url") or "",
        )


@dataclass
class Proof:
    """A proof as returned by the witness network. Untrusted until verified."""

    identifier: str
    claim_data: CompleteClaimData
    signatures: List[str]
    witnesses: List[WitnessEntry] = field(default_factory=list)
    extracted_parameter_values: Optional[Dict[str, Any]] = None
    public_data: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "identifier": self.identifier,
            "claimData": self.claim_data.to_dict(),
            "signatures": list(self.signatures),
            "witnesses": [w.to_dict() for w in self.witnesses],
        }
        if self.extracted_parameter_values is not None:
            out["extractedParameterValues"] = self.extracted_parameter_values
        if self.public_data is not None:
            out["publicData"] = self.public_data
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proof":
        signatures = _require(data, "signatures", "proof")
        if not isinstance(signatures, list):
            raise ClaimAttestError("proof signatures must be a list", ErrorKind.INVALID_PARAM)
        return cls(
            identifier=_require_str(data, "identifier", "proof"),
            claim_data=CompleteClaimData.from_dict(_require(data, "claimData", "proof")),
            signatures=signatures,
            witnesses=[WitnessEntry.from_dict(w) for w in data.get("witnesses") or []],
            extracted_parameter_values=data.get("extractedParameterValues"),
            public_data=data.get("publicData"),
        )


# -------------------------
# REQUESTS
# -------------------------

@dataclass
class ProofRequestOptions:
    accept_ai_providers: bool = False
    use_app_clip: bool = False
    variant: RequestVariant = RequestVariant.LINKED_V2
    # None means "detect from the running interpreter"
    platform: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "acceptAiProviders": self.accept_ai_providers,
            "useAppClip": self.use_app_clip,
            "variant": self.variant.value,
            "platform": self.platform,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProofRequestOptions":
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ClaimAttestError(
                f"options must be a JSON object, got {type(data).__name__}", ErrorKind.INVALID_PARAM
            )
        try:
            variant = RequestVariant(data.get("variant", RequestVariant.LINKED_V2.value))
        except ValueError as e:
            raise ClaimAttestError(
                f"Unknown request variant: {data.get('variant')!r}", ErrorKind.INVALID_PARAM, e
            ) from e
        return cls(
            accept_ai_providers=data.get("acceptAiProviders", False),
            use_app_clip=data.get("useAppClip", False),
            variant=variant,
            platform=data.get("platform"),
        )


@dataclass
class RequestedClaim:
    provider: str
    context: str
    http_provider_id: str
    parameters: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "context": self.context,
            "httpProviderId": self.http_provider_id,
            "payload": {"parameters": self.parameters},
        }


@dataclass
class RequestedProofs:
    """Requested-claims structure signed by STANDARD requests."""

    id: str
    session_id: str
    name: str
    callback_url: str
    claims: List[RequestedClaim] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "name": self.name,
            "callbackUrl": self.callback_url,
            "claims": [c.to_dict() for c in self.claims],
        }


@dataclass
class TemplateData:
    """Transport payload embedded in the verification link."""

    session_id: str
    provider_id: str
    application_id: str
    signature: str
    timestamp: str
    callback_url: str
    context: str
    parameters: Dict[str, str]
    sdk_version: str
    redirect_url: str = ""
    accept_ai_providers: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "providerId": self.provider_id,
            "applicationId": self.application_id,
            "signature": self.signature,
            "timestamp": self.timestamp,
            "callbackUrl": self.callback_url,
            "context": self.context,
            "parameters": self.parameters,
            "redirectUrl": self.redirect_url,
            "acceptAiProviders": self.accept_ai_providers,
            "sdkVersion": self.sdk_version,
        }


# -------------------------
# SESSION STATUS
# -------------------------

@dataclass
class StatusSession:
    id: str
    app_id: str
    session_id: str
    status_v2: str
    http_provider_id: List[str] = field(default_factory=list)
    proofs: List[Proof] = field(default_factory=list)

    @property
    def status(self) -> Optional[SessionStatus]:
        """Parsed status, or None for a value this client does not know."""
        try:
            return SessionStatus(self.status_v2)
        except ValueError:
            return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusSession":
        provider_ids = data.get("httpProviderId") or []
        if isinstance(provider_ids, str):
            provider_ids = [provider_ids]
        return cls(
            id=str(data.get("id", "")),
            app_id=data.get("appId", ""),
            session_id=data.get("sessionId", ""),
            status_v2=data.get("statusV2", ""),
            http_provider_id=list(provider_ids),
            proofs=[Proof.from_dict(p) for p in data.get("proofs") or []],
        )


@dataclass
class StatusUrlResponse:
    message: str = ""
    session: Optional[StatusSession] = None
    provider_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusUrlResponse":
        session = data.get("session")
        return cls(
            message=data.get("message", ""),
            session=StatusSession.from_dict(session) if session else None,
            provider_id=data.get("providerId"),
        )
