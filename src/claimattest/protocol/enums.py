from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "validation_error"
    INVALID_PARAM = "invalid_param"
    ENCODING_ERROR = "encoding_error"
    INVALID_SIGNATURE_FORMAT = "invalid_signature_format"
    INVALID_SIGNATURE = "invalid_signature"
    SIGNATURE_NOT_FOUND = "signature_not_found"
    SIGNATURE_GENERATING_ERROR = "signature_generating_error"
    SET_SIGNATURE_ERROR = "set_signature_error"
    IDENTITY_MISMATCH = "identity_mismatch"
    PROOF_NOT_VERIFIED = "proof_not_verified"
    PROOF_NOT_FOUND = "proof_not_found"
    NO_BEACON_AVAILABLE = "no_beacon_available"
    BEACON_ERROR = "beacon_error"
    SESSION_NOT_STARTED = "session_not_started"
    SESSION_LIFECYCLE = "session_lifecycle"
    PROVIDER_FAILED = "provider_failed"
    PROOF_SUBMISSION_FAILED = "proof_submission_failed"
    TIMEOUT = "timeout"
    INIT_ERROR = "init_error"
    ADD_CONTEXT_ERROR = "add_context_error"
    SET_PARAMS_ERROR = "set_params_error"
    GET_APP_CALLBACK_URL_ERROR = "get_app_callback_url_error"
    GET_STATUS_URL_ERROR = "get_status_url_error"
    CREATE_SESSION_ERROR = "create_session_error"
    UPDATE_SESSION_ERROR = "update_session_error"
    STATUS_URL_ERROR = "status_url_error"
    INTERNAL_ERROR = "internal_error"


class SessionStatus(str, Enum):
    """Remote session status as reported by the backend (``statusV2``)."""

    SESSION_INIT = "SESSION_INIT"
    SESSION_STARTED = "SESSION_STARTED"
    USER_INIT_VERIFICATION = "USER_INIT_VERIFICATION"
    USER_STARTED_VERIFICATION = "USER_STARTED_VERIFICATION"
    PROOF_GENERATION_STARTED = "PROOF_GENERATION_STARTED"
    PROOF_GENERATION_SUCCESS = "PROOF_GENERATION_SUCCESS"
    PROOF_GENERATION_FAILED = "PROOF_GENERATION_FAILED"
    PROOF_SUBMITTED = "PROOF_SUBMITTED"
    PROOF_SUBMISSION_FAILED = "PROOF_SUBMISSION_FAILED"
    PROOF_MANUAL_VERIFICATION_SUBMITTED = "PROOF_MANUAL_VERIFICATION_SUBMITTED"


class RequestVariant(str, Enum):
    """
    Kind of proof request, fixed when the request is built.

    STANDARD signs the requested-claims structure, the other two sign
    ``{providerId, timestamp}``.
    """

    STANDARD = "standard"
    LINKED_V2 = "linked_v2"
    MANUAL_VERIFICATION = "manual_verification"


class RequestState(str, Enum):
    UNINITIALIZED = "uninitialized"
    SIGNED = "signed"
    LINKED = "linked"
    SESSION_POLLING = "session_polling"
    TERMINAL = "terminal"


class PollState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (PollState.IDLE, PollState.POLLING)
