"""
Central configuration for claimattest.

Typed settings read from environment variables (12-factor style) using
pydantic-settings. Every group has its own prefix:

    CLAIMATTEST_BACKEND_BASE_URL=https://api.example.org
    CLAIMATTEST_SESSION_POLL_INTERVAL_S=3

Usage:

    from claimattest.core.settings import get_settings

    settings = get_settings()
    settings.backend.status_url_base
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendSettings(BaseSettings):
    """Backend session service and link shortener."""

    model_config = SettingsConfigDict(env_prefix="CLAIMATTEST_BACKEND_")

    base_url: str = Field(
        default="https://api.reclaimprotocol.org",
        description="Base URL of the backend session service.",
    )
    request_timeout_s: float = Field(
        default=10.0,
        description="HTTP timeout for backend calls.",
    )

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def create_session_url(self) -> str:
        return f"{self.base_url}/api/sdk/create-session/"

    @property
    def update_session_url(self) -> str:
        return f"{self.base_url}/api/sdk/update/session/"

    @property
    def shortener_url(self) -> str:
        return f"{self.base_url}/api/sdk/shortener"

    @property
    def callback_url_base(self) -> str:
        """Default proof callback; the session id is appended."""
        return f"{self.base_url}/api/sdk/callback?callbackId="

    @property
    def status_url_base(self) -> str:
        """Session status endpoint; the session id is appended."""
        return f"{self.base_url}/api/sdk/session/"


class LinkSettings(BaseSettings):
    """Fixed URL templates the verification link is rendered into."""

    model_config = SettingsConfigDict(env_prefix="CLAIMATTEST_LINK_")

    share_url: str = Field(
        default="https://share.reclaimprotocol.org/verifier/?template=",
        description="Short-link flow: template appended, then shortened.",
    )
    instant_app_url: str = Field(
        default="https://share.reclaimprotocol.org/verify/?template=",
        description="Instant-app flow for non-iOS platforms.",
    )
    app_clip_url: str = Field(
        default="https://appclip.apple.com/id?p=org.reclaimprotocol.app.clip&template=",
        description="App Clip flow for iOS.",
    )


class SessionSettings(BaseSettings):
    """Session polling policy."""

    model_config = SettingsConfigDict(env_prefix="CLAIMATTEST_SESSION_")

    poll_interval_s: float = Field(default=3.0, description="Delay between status polls.")
    failure_timeout_s: float = Field(
        default=30.0,
        description="How long PROOF_GENERATION_FAILED may persist before giving up.",
    )
    session_timeout_s: float = Field(
        default=600.0,
        description="Upper bound on a whole polling session.",
    )

    @field_validator("poll_interval_s", "failure_timeout_s", "session_timeout_s")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v


class ClaimAttestSettings(BaseSettings):
    """
    Root configuration object.

    Aggregates:
      - backend
      - link
      - session
    """

    model_config = SettingsConfigDict(env_prefix="CLAIMATTEST_")

    backend: BackendSettings = Field(default_factory=BackendSettings)
    link: LinkSettings = Field(default_factory=LinkSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)


@lru_cache(maxsize=1)
def get_settings() -> ClaimAttestSettings:
    """
    Cached accessor for ClaimAttestSettings.

    Usage:
        from claimattest.core.settings import get_settings
        settings = get_settings()
    """
    return ClaimAttestSettings()
