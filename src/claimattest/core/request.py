"""
ProofRequest: builds a signed verification request and follows its session.

Lifecycle:

    UNINITIALIZED --init--> SIGNED --get_request_url--> LINKED
        --start_session--> SESSION_POLLING --> TERMINAL

Usage:

    request = await ProofRequest.init(app_id, app_secret, provider_id)
    request.add_context("0xabc", "order 42")
    url = await request.get_request_url()
    task = await request.start_session(on_success, on_error)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import uuid
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from claimattest.claims.identifier import app_authorization_payload, requested_claims_payload
from claimattest.core.session import (
    CancellationToken,
    Clock,
    OnError,
    OnSuccess,
    SessionPoller,
    SessionRegistry,
    Sleep,
    default_registry,
)
from claimattest.core.settings import ClaimAttestSettings, get_settings
from claimattest.core.verification import verify_proof
from claimattest.crypto.signing import sign, verify_signer
from claimattest.protocol.enums import ErrorKind, PollState, RequestState, RequestVariant, SessionStatus
from claimattest.protocol.errors import ClaimAttestError
from claimattest.protocol.models import (
    Context,
    Proof,
    ProofRequestOptions,
    RequestedClaim,
    RequestedProofs,
    TemplateData,
)
from claimattest.protocol.validators import (
    validate_context,
    validate_function_params,
    validate_options,
    validate_parameters,
    validate_url,
)
from claimattest.transport.session_api import SessionAPIClient
from claimattest.utils.canonical import json_dumps
from claimattest.utils.timestamps import now_ms
from claimattest.witness.resolver import WitnessResolver

logger = logging.getLogger(__name__)

SDK_VERSION = "py-0.3.0"

# encodeURIComponent leaves these unescaped; "(" and ")" are escaped on top.
_TEMPLATE_SAFE = "-_.!~*'"

# A request serialized mid-poll resumes as linked; the poll task does not survive.
_RESTORED_STATES = {
    RequestState.SIGNED: RequestState.SIGNED,
    RequestState.LINKED: RequestState.LINKED,
    RequestState.SESSION_POLLING: RequestState.LINKED,
    RequestState.TERMINAL: RequestState.TERMINAL,
}


def encode_template(template_data: TemplateData) -> str:
    return quote(json_dumps(template_data.to_dict()), safe=_TEMPLATE_SAFE)


class ProofRequest:
    """
    A single proof request bound to one remote session.

    Instances come from ``init`` (new session) or ``from_json_string``
    (restored session); the constructor is not part of the public API.
    """

    def __init__(
        self,
        application_id: str,
        provider_id: str,
        options: ProofRequestOptions,
        *,
        session_id: str,
        timestamp: str,
        api: SessionAPIClient,
        settings: ClaimAttestSettings,
        resolver: WitnessResolver,
        registry: SessionRegistry,
        clock: Optional[Clock],
        sleep: Optional[Sleep],
        logger: logging.Logger,
    ) -> None:
        self._application_id = application_id
        self._provider_id = provider_id
        self._options = options
        self._session_id = session_id
        self._timestamp = timestamp
        self._api = api
        self._settings = settings
        self._resolver = resolver
        self._registry = registry
        self._clock = clock
        self._sleep = sleep
        self._log = logger

        self._context = Context()
        self._parameters: Dict[str, str] = {}
        self._signature: Optional[str] = None
        self._app_callback_url: Optional[str] = None
        self._redirect_url: Optional[str] = None
        self._sdk_version = SDK_VERSION
        self._state = RequestState.UNINITIALIZED
        self._poller: Optional[SessionPoller] = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    async def init(
        cls,
        application_id: str,
        app_secret: str,
        provider_id: str,
        options: Optional[ProofRequestOptions] = None,
        *,
        api: Optional[SessionAPIClient] = None,
        settings: Optional[ClaimAttestSettings] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
        resolver: Optional[WitnessResolver] = None,
        registry: Optional[SessionRegistry] = None,
    ) -> "ProofRequest":
        """
        Sign a new request with ``app_secret`` and register its remote session.

        Every failure is reported as INIT_ERROR with the original error as cause.
        """
        log = logger or logging.getLogger(__name__)
        try:
            validate_function_params(
                [
                    ("applicationId", application_id, True),
                    ("providerId", provider_id, True),
                    ("appSecret", app_secret, True),
                ],
                "the constructor",
            )
            if options is None:
                options = ProofRequestOptions()
            validate_options(options, "the constructor")

            request = cls._build(
                application_id,
                provider_id,
                options,
                session_id=uuid.uuid4().hex,
                timestamp=str(now_ms()),
                api=api,
                settings=settings,
                resolver=resolver,
                registry=registry,
                clock=clock,
                sleep=sleep,
                logger=log,
            )
            request._sign(app_secret)
            await request._api.create_session(request.session_id, application_id, provider_id)
        except Exception as e:
            log.info("Failed to initialize ProofRequest: %s", e)
            raise ClaimAttestError("Failed to initialize ProofRequest", ErrorKind.INIT_ERROR, e) from e

        log.info("Initialized proof request for session %s", request.session_id)
        return request

    @classmethod
    def _build(
        cls,
        application_id: str,
        provider_id: str,
        options: ProofRequestOptions,
        *,
        session_id: str,
        timestamp: str,
        api: Optional[SessionAPIClient],
        settings: Optional[ClaimAttestSettings],
        resolver: Optional[WitnessResolver],
        registry: Optional[SessionRegistry],
        clock: Optional[Clock],
        sleep: Optional[Sleep],
        logger: logging.Logger,
    ) -> "ProofRequest":
        settings = settings or get_settings()
        return cls(
            application_id,
            provider_id,
            options,
            session_id=session_id,
            timestamp=timestamp,
            api=api or SessionAPIClient(settings.backend, logger=logger),
            settings=settings,
            resolver=resolver or WitnessResolver(logger=logger),
            registry=registry if registry is not None else default_registry(),
            clock=clock,
            sleep=sleep,
            logger=logger,
        )

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------
    def _requested_proofs(self) -> RequestedProofs:
        return RequestedProofs(
            id=self._session_id,
            session_id=self._session_id,
            name="web-SDK",
            callback_url=self._settings.backend.callback_url_base + self._session_id,
            claims=[
                RequestedClaim(
                    provider=self._provider_id,
                    context=Context().to_json(),
                    http_provider_id=self._provider_id,
                )
            ],
        )

    def _signed_payload(self) -> bytes:
        if self._options.variant is RequestVariant.STANDARD:
            return requested_claims_payload(self._requested_proofs())
        return app_authorization_payload(self._provider_id, self._timestamp)

    def _sign(self, app_secret: str) -> None:
        try:
            signature = sign(self._signed_payload(), app_secret)
        except (ClaimAttestError, ValueError, TypeError) as e:
            raise ClaimAttestError("Error generating signature", ErrorKind.SIGNATURE_GENERATING_ERROR, e) from e
        self._set_signature(signature)

    def _set_signature(self, signature: str) -> None:
        try:
            validate_function_params([("signature", signature, True)], "set_signature")
        except ClaimAttestError as e:
            raise ClaimAttestError(
                f"Error setting signature for session {self._session_id}",
                ErrorKind.SET_SIGNATURE_ERROR,
                e,
            ) from e
        self._signature = signature
        self._state = RequestState.SIGNED

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------
    def _ensure_mutable(self, function_name: str) -> None:
        if self._state in (RequestState.LINKED, RequestState.SESSION_POLLING, RequestState.TERMINAL):
            raise ClaimAttestError(
                f"{function_name} cannot be called after the request URL was generated",
                ErrorKind.SESSION_LIFECYCLE,
            )

    def add_context(self, address: str, message: str) -> None:
        self._ensure_mutable("add_context")
        try:
            validate_function_params(
                [("address", address, True), ("message", message, True)],
                "add_context",
            )
            context = Context(contextAddress=address, contextMessage=message)
            validate_context(context, "add_context")
        except ClaimAttestError as e:
            raise ClaimAttestError(
                f"Error adding context to session {self._session_id}", ErrorKind.ADD_CONTEXT_ERROR, e
            ) from e
        self._context = context

    def set_params(self, params: Dict[str, str]) -> None:
        self._ensure_mutable("set_params")
        try:
            validate_parameters(params, "set_params")
        except ClaimAttestError as e:
            raise ClaimAttestError(
                f"Error setting params for session {self._session_id}", ErrorKind.SET_PARAMS_ERROR, e
            ) from e
        self._parameters = dict(params)

    def set_app_callback_url(self, url: str) -> None:
        self._ensure_mutable("set_app_callback_url")
        validate_url(url, "set_app_callback_url")
        self._app_callback_url = url

    def set_redirect_url(self, url: str) -> None:
        self._ensure_mutable("set_redirect_url")
        validate_url(url, "set_redirect_url")
        self._redirect_url = url

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------
    def get_app_callback_url(self) -> str:
        try:
            validate_function_params([("sessionId", self._session_id, True)], "get_app_callback_url")
        except ClaimAttestError as e:
            raise ClaimAttestError(
                "Error getting app callback url", ErrorKind.GET_APP_CALLBACK_URL_ERROR, e
            ) from e
        return self._app_callback_url or self._settings.backend.callback_url_base + self._session_id

    def get_status_url(self) -> str:
        try:
            validate_function_params([("sessionId", self._session_id, True)], "get_status_url")
        except ClaimAttestError as e:
            raise ClaimAttestError("Error fetching status url", ErrorKind.GET_STATUS_URL_ERROR, e) from e
        return self._settings.backend.status_url_base + self._session_id

    @property
    def application_id(self) -> str:
        return self._application_id

    @property
    def provider_id(self) -> str:
        return self._provider_id

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def signature(self) -> Optional[str]:
        return self._signature

    @property
    def timestamp(self) -> str:
        return self._timestamp

    @property
    def context(self) -> Context:
        return Context(self._context.contextAddress, self._context.contextMessage)

    @property
    def parameters(self) -> Dict[str, str]:
        return dict(self._parameters)

    @property
    def redirect_url(self) -> Optional[str]:
        return self._redirect_url

    @property
    def sdk_version(self) -> str:
        return self._sdk_version

    @property
    def options(self) -> ProofRequestOptions:
        return self._options

    @property
    def state(self) -> RequestState:
        return self._state

    # ------------------------------------------------------------------
    # Request URL
    # ------------------------------------------------------------------
    def template_data(self) -> TemplateData:
        return TemplateData(
            session_id=self._session_id,
            provider_id=self._provider_id,
            application_id=self._application_id,
            signature=self._signature or "",
            timestamp=self._timestamp,
            callback_url=self.get_app_callback_url(),
            context=self._context.to_json(),
            parameters=dict(self._parameters),
            sdk_version=self._sdk_version,
            redirect_url=self._redirect_url or "",
            accept_ai_providers=self._options.accept_ai_providers,
        )

    async def get_request_url(self) -> str:
        """
        Render the verification link and mark the remote session started.

        Raises SIGNATURE_NOT_FOUND / INVALID_SIGNATURE before any network call.
        """
        self._log.info("Creating request URL for session %s", self._session_id)
        if not self._signature:
            raise ClaimAttestError("Signature is not set.", ErrorKind.SIGNATURE_NOT_FOUND)
        verify_signer(self._signed_payload(), self._signature, self._application_id)

        template = encode_template(self.template_data())
        await self._api.update_session(self._session_id, SessionStatus.SESSION_STARTED)

        link = self._settings.link
        if self._options.use_app_clip:
            platform = (self._options.platform or sys.platform).lower()
            if platform == "ios":
                url = link.app_clip_url + template
            else:
                url = link.instant_app_url + template
        else:
            url = await self._api.shorten(link.share_url + template)

        if self._state is RequestState.SIGNED:
            self._state = RequestState.LINKED
        self._log.info("Request URL created for session %s", self._session_id)
        return url

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_json_string(self) -> str:
        return json_dumps(
            {
                "applicationId": self._application_id,
                "providerId": self._provider_id,
                "sessionId": self._session_id,
                "context": self._context.to_dict(),
                "parameters": self._parameters,
                "appCallbackUrl": self._app_callback_url,
                "signature": self._signature,
                "redirectUrl": self._redirect_url,
                "timeStamp": self._timestamp,
                "options": self._options.to_dict(),
                "sdkVersion": self._sdk_version,
                "state": self._state.value,
            }
        )

    @classmethod
    def from_json_string(
        cls,
        json_string: str,
        *,
        api: Optional[SessionAPIClient] = None,
        settings: Optional[ClaimAttestSettings] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
        resolver: Optional[WitnessResolver] = None,
        registry: Optional[SessionRegistry] = None,
    ) -> "ProofRequest":
        """Restore a request produced by ``to_json_string``. Raises INVALID_PARAM."""
        log = logger or logging.getLogger(__name__)
        try:
            data = json.loads(json_string)
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
        except (TypeError, ValueError) as e:
            raise ClaimAttestError(
                "Invalid JSON string provided to from_json_string", ErrorKind.INVALID_PARAM, e
            ) from e

        where = "from_json_string"
        try:
            validate_function_params(
                [
                    ("applicationId", data.get("applicationId"), True),
                    ("providerId", data.get("providerId"), True),
                    ("sessionId", data.get("sessionId"), True),
                    ("signature", data.get("signature"), True),
                    ("timeStamp", data.get("timeStamp"), True),
                    ("sdkVersion", data.get("sdkVersion"), True),
                ],
                where,
            )
            context = Context.from_dict(data.get("context") or {})
            validate_context(context, where)
            parameters = data.get("parameters") or {}
            validate_parameters(parameters, where)
            for key in ("appCallbackUrl", "redirectUrl"):
                if data.get(key) is not None:
                    validate_url(data[key], where)
            options = ProofRequestOptions.from_dict(data.get("options"))
            validate_options(options, where)
            state = _RESTORED_STATES[RequestState(data.get("state") or RequestState.SIGNED.value)]
        except ClaimAttestError:
            raise
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ClaimAttestError(
                f"Invalid field in from_json_string: {e}", ErrorKind.INVALID_PARAM, e
            ) from e

        request = cls._build(
            data["applicationId"],
            data["providerId"],
            options,
            session_id=data["sessionId"],
            timestamp=data["timeStamp"],
            api=api,
            settings=settings,
            resolver=resolver,
            registry=registry,
            clock=clock,
            sleep=sleep,
            logger=log,
        )
        request._context = context
        request._parameters = dict(parameters)
        request._app_callback_url = data.get("appCallbackUrl")
        request._redirect_url = data.get("redirectUrl")
        request._sdk_version = data["sdkVersion"]
        request._signature = data["signature"]
        request._state = state
        return request

    # ------------------------------------------------------------------
    # Session polling
    # ------------------------------------------------------------------
    async def _verify_proofs(self, proofs: List[Proof]) -> bool:
        return await verify_proof(proofs, self._resolver, log=self._log)

    async def start_session(
        self,
        on_success: OnSuccess,
        on_error: OnError,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> "asyncio.Task[PollState]":
        """
        Start polling the session status in a background task.

        Exactly one of the callbacks fires. Await the returned task to wait
        for the outcome.
        """
        if not self._session_id or not self._signature:
            self._log.info("Session ID or signature is not set")
            raise ClaimAttestError(
                "Session can't be started due to undefined value of sessionId or signature",
                ErrorKind.SESSION_NOT_STARTED,
            )
        if self._state is RequestState.TERMINAL:
            raise ClaimAttestError(
                f"Session {self._session_id} already completed",
                ErrorKind.SESSION_LIFECYCLE,
            )

        default_callback = self._settings.backend.callback_url_base + self._session_id
        poller = SessionPoller(
            self._session_id,
            self._api,
            self._verify_proofs,
            uses_default_callback=self.get_app_callback_url() == default_callback,
            accept_manual_submission=self._options.variant is RequestVariant.MANUAL_VERIFICATION,
            settings=self._settings.session,
            registry=self._registry,
            cancel_token=cancel_token,
            clock=self._clock,
            sleep=self._sleep,
            logger=self._log,
        )
        resume_state = RequestState.LINKED if self._state is RequestState.SESSION_POLLING else self._state

        def settle() -> None:
            if self._poller is not poller:
                return
            self._poller = None
            self._state = resume_state if poller.state is PollState.CANCELLED else RequestState.TERMINAL

        def succeeded(value: Any) -> Any:
            settle()
            return on_success(value)

        def failed(error: ClaimAttestError) -> Any:
            settle()
            return on_error(error)

        task = poller.start(succeeded, failed)
        self._poller = poller
        self._state = RequestState.SESSION_POLLING
        return task

    def cancel_session(self, reason: Optional[str] = None) -> bool:
        """Cancel the active poll, if any. Its ``on_error`` receives SESSION_LIFECYCLE."""
        if self._poller is None:
            return False
        self._poller.cancel(reason)
        return True
