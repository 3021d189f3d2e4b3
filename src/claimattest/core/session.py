"""
Session polling state machine.

    IDLE -> POLLING -> SUCCEEDED | FAILED | TIMED_OUT | CANCELLED

One asyncio task per session polls the backend status endpoint every
``poll_interval_s`` seconds. Ticks never overlap: the next sleep starts only
after the previous status fetch (and proof verification) finished.

Exactly one of ``on_success`` / ``on_error`` fires per started poller, and
the poller leaves the registry on every terminal transition.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from claimattest.core.settings import SessionSettings, get_settings
from claimattest.protocol.enums import ErrorKind, PollState, SessionStatus
from claimattest.protocol.errors import ClaimAttestError
from claimattest.protocol.models import Proof
from claimattest.transport.session_api import SessionAPIClient
from claimattest.utils.timestamps import monotonic_s

logger = logging.getLogger(__name__)

CUSTOM_CALLBACK_SUCCESS_MESSAGE = "Proof submitted successfully to the custom callback url"

SuccessValue = Union[Proof, List[Proof], str]
OnSuccess = Callable[[SuccessValue], Any]
OnError = Callable[[ClaimAttestError], Any]
ProofVerifier = Callable[[List[Proof]], Awaitable[bool]]
Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class CancellationToken:
    """
    Caller-owned cancellation flag, safe to set from any thread.

    The poller checks it after every sleep and stops with a
    SESSION_LIFECYCLE error delivered to ``on_error``.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = "Session polling cancelled"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if self._event.is_set():
            return
        if reason:
            self._reason = reason
        self._event.set()


class SessionRegistry:
    """
    Session id -> active poller.

    - at most one active poller per session id; registering a second one
      supersedes (cancels) the first
    - a session that reached SUCCEEDED / FAILED / TIMED_OUT cannot be polled again
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Dict[str, "SessionPoller"] = {}
        self._finished: Set[str] = set()

    def register(self, poller: "SessionPoller") -> Optional["SessionPoller"]:
        with self._lock:
            if poller.session_id in self._finished:
                raise ClaimAttestError(
                    f"Session {poller.session_id} already completed and cannot be started again",
                    ErrorKind.SESSION_LIFECYCLE,
                )
            prior = self._active.get(poller.session_id)
            self._active[poller.session_id] = poller
        if prior is not None:
            prior.cancel("Session polling superseded by a newer start_session call")
        return prior

    def release(self, poller: "SessionPoller") -> None:
        """Drop ``poller`` if it is still the active one; a superseded poller never ends the session."""
        with self._lock:
            if self._active.get(poller.session_id) is not poller:
                return
            del self._active[poller.session_id]
            if poller.state in (PollState.SUCCEEDED, PollState.FAILED, PollState.TIMED_OUT):
                self._finished.add(poller.session_id)

    def get(self, session_id: str) -> Optional["SessionPoller"]:
        with self._lock:
            return self._active.get(session_id)

    def cancel(self, session_id: str, reason: Optional[str] = None) -> bool:
        poller = self.get(session_id)
        if poller is None:
            return False
        poller.cancel(reason)
        return True

    def is_finished(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._finished

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._active

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)


class SessionPoller:
    """
    Polls one remote session until a terminal outcome.

    ``uses_default_callback`` selects the success rule:
      - True: proofs appear in the session payload and must pass ``verifier``;
        one proof is delivered unwrapped, several as a list.
      - False: the application's own callback receives the proofs; success is
        PROOF_SUBMITTED (or PROOF_MANUAL_VERIFICATION_SUBMITTED when
        ``accept_manual_submission``), PROOF_SUBMISSION_FAILED is fatal.
    """

    def __init__(
        self,
        session_id: str,
        api: SessionAPIClient,
        verifier: ProofVerifier,
        *,
        uses_default_callback: bool = True,
        accept_manual_submission: bool = False,
        settings: Optional[SessionSettings] = None,
        registry: Optional[SessionRegistry] = None,
        cancel_token: Optional[CancellationToken] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if not isinstance(session_id, str) or not session_id.strip():
            raise ClaimAttestError(
                "Session can't be started due to undefined value of sessionId",
                ErrorKind.SESSION_NOT_STARTED,
            )
        self.session_id = session_id
        self._api = api
        self._verifier = verifier
        self._uses_default_callback = uses_default_callback
        self._accept_manual_submission = accept_manual_submission
        self._settings = settings or get_settings().session
        self._registry = registry if registry is not None else default_registry()
        self._token = cancel_token or CancellationToken()
        self._clock = clock or monotonic_s
        self._sleep = sleep or asyncio.sleep
        self._log = logger or logging.getLogger(__name__)

        self._state = PollState.IDLE
        self._first_failure_at: Optional[float] = None
        self._on_success: Optional[OnSuccess] = None
        self._on_error: Optional[OnError] = None
        self.ticks = 0

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def cancel_token(self) -> CancellationToken:
        return self._token

    def cancel(self, reason: Optional[str] = None) -> None:
        self._token.cancel(reason)

    # ------------------------------------------------------------------
    # Start / run
    # ------------------------------------------------------------------
    def start(self, on_success: OnSuccess, on_error: OnError) -> "asyncio.Task[PollState]":
        """Register with the registry and schedule ``run`` on the running loop."""
        if self._state is not PollState.IDLE:
            raise ClaimAttestError(
                f"Poller for session {self.session_id} was already started",
                ErrorKind.SESSION_LIFECYCLE,
            )
        loop = asyncio.get_running_loop()
        self._registry.register(self)
        self._state = PollState.POLLING
        return loop.create_task(self._run(on_success, on_error))

    async def run(self, on_success: OnSuccess, on_error: OnError) -> PollState:
        """Start and wait for the terminal state."""
        return await self.start(on_success, on_error)

    async def _run(self, on_success: OnSuccess, on_error: OnError) -> PollState:
        self._on_success = on_success
        self._on_error = on_error
        started_at = self._clock()
        self._log.info("Starting session polling for %s", self.session_id)
        try:
            while not self._state.is_terminal:
                await self._sleep(self._settings.poll_interval_s)

                if self._token.cancelled:
                    await self._finish_cancelled()
                    break

                if self._clock() - started_at >= self._settings.session_timeout_s:
                    await self._finish(
                        PollState.TIMED_OUT,
                        error=ClaimAttestError(
                            "Interval ended without receiving proofs", ErrorKind.TIMEOUT
                        ),
                    )
                    break

                self.ticks += 1
                outcome: Optional[SuccessValue] = None
                error: Optional[ClaimAttestError] = None
                try:
                    outcome = await self._tick()
                except ClaimAttestError as e:
                    error = e
                except Exception as e:
                    error = ClaimAttestError(
                        f"Session polling failed: {e}", ErrorKind.INTERNAL_ERROR, e
                    )

                # cancelled or superseded while the status call was in flight
                if self._token.cancelled:
                    await self._finish_cancelled()
                    break

                if error is not None:
                    await self._finish(PollState.FAILED, error=error)
                    break

                if outcome is not None:
                    await self._finish(PollState.SUCCEEDED, value=outcome)
        except asyncio.CancelledError:
            await self._finish(
                PollState.CANCELLED,
                error=ClaimAttestError(
                    "Session polling task was cancelled", ErrorKind.SESSION_LIFECYCLE
                ),
            )
            raise
        finally:
            self._registry.release(self)
        return self._state

    async def _finish_cancelled(self) -> None:
        await self._finish(
            PollState.CANCELLED,
            error=ClaimAttestError(self._token.reason, ErrorKind.SESSION_LIFECYCLE),
        )

    # ------------------------------------------------------------------
    # One poll
    # ------------------------------------------------------------------
    async def _tick(self) -> Optional[SuccessValue]:
        response = await self._api.get_session_status(self.session_id)
        session = response.session
        if session is None:
            return None

        status = session.status_v2
        if status != SessionStatus.PROOF_GENERATION_FAILED.value:
            self._first_failure_at = None
        else:
            now = self._clock()
            if self._first_failure_at is None:
                self._first_failure_at = now
            elif now - self._first_failure_at >= self._settings.failure_timeout_s:
                raise ClaimAttestError(
                    "Proof generation failed - timeout reached", ErrorKind.PROVIDER_FAILED
                )
            return None

        if self._uses_default_callback:
            if not session.proofs:
                return None
            proofs = list(session.proofs)
            try:
                verified = await self._verifier(proofs)
            except ClaimAttestError as e:
                raise ClaimAttestError(
                    f"Proof verification failed: {e.message}", ErrorKind.PROOF_NOT_VERIFIED, e
                ) from e
            if not verified:
                self._log.info("Proofs not verified for session %s", self.session_id)
                raise ClaimAttestError("Proofs not verified", ErrorKind.PROOF_NOT_VERIFIED)
            return proofs[0] if len(proofs) == 1 else proofs

        if status == SessionStatus.PROOF_SUBMISSION_FAILED.value:
            raise ClaimAttestError(
                "Proof submission to the custom callback url failed",
                ErrorKind.PROOF_SUBMISSION_FAILED,
            )
        if status == SessionStatus.PROOF_SUBMITTED.value or (
            self._accept_manual_submission
            and status == SessionStatus.PROOF_MANUAL_VERIFICATION_SUBMITTED.value
        ):
            return CUSTOM_CALLBACK_SUCCESS_MESSAGE
        return None

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    async def _finish(
        self,
        state: PollState,
        *,
        value: Optional[SuccessValue] = None,
        error: Optional[ClaimAttestError] = None,
    ) -> None:
        if self._state.is_terminal:
            return
        self._state = state
        self._registry.release(self)

        if error is not None:
            self._log.info(
                "Session %s ended %s: %s (%s)",
                self.session_id, state.value, error.message, error.kind.value,
            )
            callback, arg = self._on_error, error
        else:
            self._log.info("Session %s ended %s", self.session_id, state.value)
            callback, arg = self._on_success, value

        if callback is None:
            return
        try:
            result = callback(arg)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self._log.exception("Session %s callback raised", self.session_id)


_DEFAULT_REGISTRY = SessionRegistry()


def default_registry() -> SessionRegistry:
    """Process-wide registry used when none is injected."""
    return _DEFAULT_REGISTRY
