"""
Shared fixtures: deterministic keys, proof factory, fake clock, mock backend.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

APP_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
APP_ADDRESS = "0x2c7536e3605d9c16a7a3d7b1898e529396a65c23"
PROVIDER_ID = "6d3f6753-7ee6-49ee-a545-62f1b1822ae5"


# ===========================================================================
# Keys and proofs
# ===========================================================================


@pytest.fixture
def app_signer():
    from claimattest.crypto.signing import EthSigner

    return EthSigner.from_hex(APP_PRIVATE_KEY)


@pytest.fixture
def witness_signers():
    from claimattest.crypto.signing import EthSigner

    return [EthSigner.from_private_bytes(bytes([i]) * 32) for i in (1, 2, 3)]


@pytest.fixture
def make_proof():
    """Build a correctly identified proof signed by the given witnesses."""
    from claimattest.claims.identifier import claim_sign_data, derive_identifier
    from claimattest.protocol.models import CompleteClaimData, Proof, WitnessEntry

    def _make(
        signers,
        *,
        parameters: Any = '{"method":"GET","url":"https://example.com/api"}',
        context: str = '{"contextAddress":"0x0","contextMessage":"sample message"}',
        owner: str = "0x1111111111111111111111111111111111111111",
        timestamp_s: int = 1700000000,
        epoch: int = 1,
        witness_url: str = "wss://witness.example.com/ws",
    ) -> Proof:
        claim = CompleteClaimData(
            provider="http",
            parameters=parameters,
            context=context,
            owner=owner,
            timestamp_s=timestamp_s,
            epoch=epoch,
            identifier="",
        )
        claim.identifier = derive_identifier(claim)
        data = claim_sign_data(claim)
        return Proof(
            identifier=claim.identifier,
            claim_data=claim,
            signatures=[s.sign_message(data) for s in signers],
            witnesses=[WitnessEntry(s.address, witness_url) for s in signers],
        )

    return _make


@pytest.fixture
def beacon_for(witness_signers):
    """StaticBeacon publishing the given signers for epoch 1."""
    from claimattest.protocol.models import WitnessEntry
    from claimattest.witness.resolver import StaticBeacon

    def _beacon(signers=None, epoch: int = 1):
        signers = witness_signers if signers is None else signers
        return StaticBeacon({epoch: [WitnessEntry(s.address, "wss://witness") for s in signers]})

    return _beacon


# ===========================================================================
# Time
# ===========================================================================


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


@pytest.fixture
def fake_clock():
    return FakeClock()


# ===========================================================================
# Backend
# ===========================================================================


class MockBackend:
    """
    httpx.MockTransport handler emulating the session service.

    ``status_payloads`` is consumed one per status poll; the last one repeats.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_payloads: List[Dict[str, Any]] = [{"message": "ok"}]
        self.fail: Dict[str, int] = {}
        self.short_url: Optional[str] = "https://short.test/abc"
        self._status_calls = 0

    def calls_to(self, path_prefix: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith(path_prefix)]

    def bodies_to(self, path_prefix: str) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.calls_to(path_prefix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for prefix, status_code in self.fail.items():
            if path.startswith(prefix):
                return httpx.Response(status_code, json={"message": "failure"})

        if path == "/api/sdk/create-session/":
            return httpx.Response(200, json={"message": "Session created"})
        if path == "/api/sdk/update/session/":
            return httpx.Response(200, json={"message": "Session updated"})
        if path == "/api/sdk/shortener":
            return httpx.Response(200, json={"result": {"shortUrl": self.short_url}})
        if path.startswith("/api/sdk/session/"):
            index = min(self._status_calls, len(self.status_payloads) - 1)
            self._status_calls += 1
            return httpx.Response(200, json=self.status_payloads[index])
        return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def backend():
    return MockBackend()


@pytest.fixture
def settings():
    from claimattest.core.settings import (
        BackendSettings,
        ClaimAttestSettings,
        LinkSettings,
        SessionSettings,
    )

    return ClaimAttestSettings(
        backend=BackendSettings(base_url="https://backend.test"),
        link=LinkSettings(),
        session=SessionSettings(poll_interval_s=3, failure_timeout_s=30, session_timeout_s=600),
    )


@pytest.fixture
def api_factory(backend, settings):
    """Fresh SessionAPIClient per call, backed by the mock backend."""
    from claimattest.transport.session_api import SessionAPIClient

    def _api() -> SessionAPIClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(backend.handler))
        return SessionAPIClient(settings.backend, client=client)

    return _api


def session_payload(session_id: str, status: str, proofs: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {
        "message": "ok",
        "session": {
            "id": "1",
            "appId": APP_ADDRESS,
            "sessionId": session_id,
            "statusV2": status,
            "httpProviderId": [PROVIDER_ID],
            "proofs": proofs or [],
        },
    }


@pytest.fixture
def status_payload() -> Callable[..., Dict[str, Any]]:
    return session_payload
