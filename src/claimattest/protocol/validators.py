from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Tuple

from pydantic import AnyUrl, TypeAdapter, ValidationError as PydanticValidationError

from .enums import ErrorKind, RequestVariant
from .errors import ClaimAttestError
from .models import Context, ProofRequestOptions

logger = logging.getLogger(__name__)

_URL_ADAPTER = TypeAdapter(AnyUrl)

# (paramName, value, mustBeNonEmptyString)
ParamCheck = Tuple[str, Any, bool]


def _invalid(message: str, cause: Optional[BaseException] = None) -> ClaimAttestError:
    logger.debug("Validation failed: %s", message)
    return ClaimAttestError(message, ErrorKind.INVALID_PARAM, cause)


def validate_function_params(params: Iterable[ParamCheck], function_name: str) -> None:
    for param_name, value, is_string in params:
        if value is None:
            raise _invalid(f"{param_name} passed to {function_name} must not be None.")
        if is_string and not isinstance(value, str):
            raise _invalid(f"{param_name} passed to {function_name} must be a string.")
        if is_string and value.strip() == "":
            raise _invalid(f"{param_name} passed to {function_name} must not be an empty string.")


def validate_url(url: Any, function_name: str) -> None:
    if not isinstance(url, str) or not url.strip():
        raise _invalid(f"Invalid URL format {url!r} passed to {function_name}.")
    try:
        _URL_ADAPTER.validate_python(url)
    except PydanticValidationError as e:
        raise _invalid(f"Invalid URL format {url} passed to {function_name}.", e) from e


def validate_context(context: Any, function_name: str = "validate_context") -> None:
    if not isinstance(context, Context):
        raise _invalid(f"context passed to {function_name} must be a Context.")
    validate_function_params(
        [
            ("contextAddress", context.contextAddress, True),
            ("contextMessage", context.contextMessage, True),
        ],
        function_name,
    )


def validate_parameters(parameters: Any, function_name: str = "validate_parameters") -> None:
    """Parameters must be a flat mapping of string keys to string values."""
    if not isinstance(parameters, dict):
        raise _invalid(f"parameters passed to {function_name} must be a dict of strings.")
    for key, value in parameters.items():
        if not isinstance(key, str) or not key.strip():
            raise _invalid(f"parameter name {key!r} passed to {function_name} must be a non-empty string.")
        if not isinstance(value, str):
            raise _invalid(f"parameter {key} passed to {function_name} must have a string value.")


def validate_options(options: Any, function_name: str = "validate_options") -> None:
    if not isinstance(options, ProofRequestOptions):
        raise _invalid(f"options passed to {function_name} must be ProofRequestOptions.")
    if not isinstance(options.accept_ai_providers, bool):
        raise _invalid(f"acceptAiProviders passed to {function_name} must be a boolean.")
    if not isinstance(options.use_app_clip, bool):
        raise _invalid(f"useAppClip passed to {function_name} must be a boolean.")
    if not isinstance(options.variant, RequestVariant):
        raise _invalid(f"variant passed to {function_name} must be a RequestVariant.")
    if options.platform is not None and not isinstance(options.platform, str):
        raise _invalid(f"platform passed to {function_name} must be a string.")
