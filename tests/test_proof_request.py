"""
ProofRequest: init, setters, request URL rendering, serialization, polling.
"""

import asyncio
import json
from urllib.parse import unquote

import pytest

from claimattest.protocol.enums import ErrorKind, PollState, RequestState, RequestVariant
from claimattest.protocol.errors import ClaimAttestError
from claimattest.protocol.models import ProofRequestOptions

PROVIDER_ID = "6d3f6753-7ee6-49ee-a545-62f1b1822ae5"
SHARE_URL = "https://share.reclaimprotocol.org/verifier/?template="
CALLBACK_BASE = "https://backend.test/api/sdk/callback?callbackId="


# ===========================================================================
# Test fixtures
# ===========================================================================


@pytest.fixture
def registry():
    from claimattest.core.session import SessionRegistry

    return SessionRegistry()


@pytest.fixture
def request_kwargs(api_factory, settings, fake_clock, beacon_for, registry):
    from claimattest.witness.resolver import WitnessResolver

    def _kwargs():
        return dict(
            api=api_factory(),
            settings=settings,
            clock=fake_clock,
            sleep=fake_clock.sleep,
            resolver=WitnessResolver(beacon_for()),
            registry=registry,
        )

    return _kwargs


@pytest.fixture
def init_request(app_signer, request_kwargs):
    from claimattest.core.request import ProofRequest

    async def _init(options=None, **overrides):
        args = {
            "application_id": app_signer.address,
            "app_secret": app_signer.private_key_hex,
            "provider_id": PROVIDER_ID,
        }
        args.update(overrides)
        return await ProofRequest.init(options=options, **args, **request_kwargs())

    return _init


def template_of(url: str) -> dict:
    return json.loads(unquote(url.split("template=", 1)[1]))


class Recorder:
    def __init__(self):
        self.successes = []
        self.errors = []

    def on_success(self, value):
        self.successes.append(value)

    def on_error(self, error):
        self.errors.append(error)


# ===========================================================================
# init
# ===========================================================================


class TestInit:
    def test_creates_signed_request(self, init_request, backend, app_signer):
        from claimattest.claims.identifier import app_authorization_payload
        from claimattest.crypto.signing import recover

        request = asyncio.run(init_request())

        assert request.state is RequestState.SIGNED
        assert len(request.session_id) == 32
        assert request.timestamp.isdigit()
        assert request.sdk_version == "py-0.3.0"
        assert request.options.variant is RequestVariant.LINKED_V2
        assert backend.bodies_to("/api/sdk/create-session/") == [
            {"sessionId": request.session_id, "appId": app_signer.address, "providerId": PROVIDER_ID}
        ]
        payload = app_authorization_payload(PROVIDER_ID, request.timestamp)
        assert recover(payload, request.signature) == app_signer.address

    def test_session_ids_unique(self, init_request):
        async def scenario():
            return await init_request(), await init_request()

        first, second = asyncio.run(scenario())
        assert first.session_id != second.session_id

    @pytest.mark.parametrize(
        "overrides, cause_kind",
        [
            ({"application_id": ""}, ErrorKind.INVALID_PARAM),
            ({"provider_id": None}, ErrorKind.INVALID_PARAM),
            ({"app_secret": "not-hex"}, ErrorKind.SIGNATURE_GENERATING_ERROR),
        ],
    )
    def test_invalid_inputs(self, init_request, backend, overrides, cause_kind):
        with pytest.raises(ClaimAttestError) as exc:
            asyncio.run(init_request(**overrides))
        assert exc.value.kind is ErrorKind.INIT_ERROR
        assert exc.value.cause.kind is cause_kind
        assert backend.calls_to("/api/sdk/create-session/") == []

    def test_invalid_options(self, init_request):
        with pytest.raises(ClaimAttestError) as exc:
            asyncio.run(init_request(ProofRequestOptions(use_app_clip="yes")))
        assert exc.value.kind is ErrorKind.INIT_ERROR
        assert exc.value.cause.kind is ErrorKind.INVALID_PARAM

    def test_create_session_failure(self, init_request, backend):
        backend.fail["/api/sdk/create-session/"] = 500
        with pytest.raises(ClaimAttestError) as exc:
            asyncio.run(init_request())
        assert exc.value.kind is ErrorKind.INIT_ERROR
        assert exc.value.cause.kind is ErrorKind.CREATE_SESSION_ERROR


# ===========================================================================
# Setters and getters
# ===========================================================================


class TestSetters:
    def test_add_context(self, init_request):
        request = asyncio.run(init_request())
        request.add_context("0xabc", "order 42")
        assert request.context.to_dict() == {"contextAddress": "0xabc", "contextMessage": "order 42"}

    def test_add_context_invalid_keeps_previous(self, init_request):
        request = asyncio.run(init_request())
        request.add_context("0xabc", "order 42")
        with pytest.raises(ClaimAttestError) as exc:
            request.add_context("", "other")
        assert exc.value.kind is ErrorKind.ADD_CONTEXT_ERROR
        assert request.context.contextMessage == "order 42"

    def test_set_params(self, init_request):
        request = asyncio.run(init_request())
        request.set_params({"email": "a@b.c"})
        assert request.parameters == {"email": "a@b.c"}

    @pytest.mark.parametrize("bad", [{"a": 1}, {"": "x"}, ["a"]])
    def test_set_params_invalid_keeps_previous(self, init_request, bad):
        request = asyncio.run(init_request())
        request.set_params({"email": "a@b.c"})
        with pytest.raises(ClaimAttestError) as exc:
            request.set_params(bad)
        assert exc.value.kind is ErrorKind.SET_PARAMS_ERROR
        assert request.parameters == {"email": "a@b.c"}

    def test_callback_url(self, init_request):
        request = asyncio.run(init_request())
        assert request.get_app_callback_url() == CALLBACK_BASE + request.session_id

        request.set_app_callback_url("https://app.example.com/cb")
        assert request.get_app_callback_url() == "https://app.example.com/cb"

    @pytest.mark.parametrize("setter", ["set_app_callback_url", "set_redirect_url"])
    def test_invalid_urls(self, init_request, setter):
        request = asyncio.run(init_request())
        with pytest.raises(ClaimAttestError) as exc:
            getattr(request, setter)("not a url")
        assert exc.value.kind is ErrorKind.INVALID_PARAM
        assert request.redirect_url is None

    def test_status_url(self, init_request):
        request = asyncio.run(init_request())
        assert request.get_status_url() == "https://backend.test/api/sdk/session/" + request.session_id


# ===========================================================================
# get_request_url
# ===========================================================================


class TestRequestUrl:
    def test_short_link(self, init_request, backend):
        async def scenario():
            request = await init_request()
            request.add_context("0xabc", "hello (world)")
            request.set_params({"email": "a@b.c"})
            return request, await request.get_request_url()

        request, url = asyncio.run(scenario())

        assert url == "https://short.test/abc"
        assert request.state is RequestState.LINKED
        assert backend.bodies_to("/api/sdk/update/session/") == [
            {"sessionId": request.session_id, "status": "SESSION_STARTED"}
        ]

        full_url = backend.bodies_to("/api/sdk/shortener")[0]["fullUrl"]
        assert full_url.startswith(SHARE_URL)
        template = full_url[len(SHARE_URL):]
        assert "(" not in template and ")" not in template
        assert "%28world%29" in template

        data = template_of(full_url)
        assert data == {
            "sessionId": request.session_id,
            "providerId": PROVIDER_ID,
            "applicationId": request.application_id,
            "signature": request.signature,
            "timestamp": request.timestamp,
            "callbackUrl": CALLBACK_BASE + request.session_id,
            "context": '{"contextAddress":"0xabc","contextMessage":"hello (world)"}',
            "parameters": {"email": "a@b.c"},
            "redirectUrl": "",
            "acceptAiProviders": False,
            "sdkVersion": "py-0.3.0",
        }

    def test_shortener_failure_falls_back(self, init_request, backend):
        backend.fail["/api/sdk/shortener"] = 500

        async def scenario():
            request = await init_request()
            return await request.get_request_url()

        url = asyncio.run(scenario())
        assert url.startswith(SHARE_URL)
        assert template_of(url)["providerId"] == PROVIDER_ID

    @pytest.mark.parametrize(
        "platform, prefix",
        [
            ("ios", "https://appclip.apple.com/id?p=org.reclaimprotocol.app.clip&template="),
            ("android", "https://share.reclaimprotocol.org/verify/?template="),
        ],
    )
    def test_app_clip_links(self, init_request, backend, platform, prefix):
        options = ProofRequestOptions(use_app_clip=True, platform=platform, accept_ai_providers=True)

        async def scenario():
            request = await init_request(options)
            return await request.get_request_url()

        url = asyncio.run(scenario())
        assert url.startswith(prefix)
        assert template_of(url)["acceptAiProviders"] is True
        assert backend.calls_to("/api/sdk/shortener") == []

    def test_standard_variant_signature_verifies(self, init_request):
        async def scenario():
            request = await init_request(ProofRequestOptions(variant=RequestVariant.STANDARD))
            return await request.get_request_url()

        assert asyncio.run(scenario()) == "https://short.test/abc"

    def test_signature_from_other_key_rejected(self, init_request, backend, witness_signers):
        async def scenario():
            request = await init_request(application_id=witness_signers[0].address)
            await request.get_request_url()

        with pytest.raises(ClaimAttestError) as exc:
            asyncio.run(scenario())
        assert exc.value.kind is ErrorKind.INVALID_SIGNATURE
        assert backend.calls_to("/api/sdk/update/session/") == []

    def test_update_session_failure(self, init_request, backend):
        backend.fail["/api/sdk/update/session/"] = 503

        async def scenario():
            request = await init_request()
            with pytest.raises(ClaimAttestError) as exc:
                await request.get_request_url()
            return request, exc.value

        request, error = asyncio.run(scenario())
        assert error.kind is ErrorKind.UPDATE_SESSION_ERROR
        assert request.state is RequestState.SIGNED

    def test_setters_locked_after_link(self, init_request):
        async def scenario():
            request = await init_request()
            await request.get_request_url()
            return request

        request = asyncio.run(scenario())
        for call in (
            lambda: request.add_context("0xabc", "m"),
            lambda: request.set_params({"a": "b"}),
            lambda: request.set_app_callback_url("https://app.example.com/cb"),
            lambda: request.set_redirect_url("https://app.example.com/done"),
        ):
            with pytest.raises(ClaimAttestError) as exc:
                call()
            assert exc.value.kind is ErrorKind.SESSION_LIFECYCLE


# ===========================================================================
# Serialization
# ===========================================================================


class TestSerialization:
    def test_round_trip(self, init_request, request_kwargs):
        from claimattest.core.request import ProofRequest

        request = asyncio.run(init_request(ProofRequestOptions(variant=RequestVariant.MANUAL_VERIFICATION)))
        request.add_context("0xabc", "order 42")
        request.set_params({"email": "a@b.c"})
        request.set_redirect_url("https://app.example.com/done")

        restored = ProofRequest.from_json_string(request.to_json_string(), **request_kwargs())

        assert restored.to_json_string() == request.to_json_string()
        assert restored.session_id == request.session_id
        assert restored.signature == request.signature
        assert restored.timestamp == request.timestamp
        assert restored.options.variant is RequestVariant.MANUAL_VERIFICATION
        assert restored.state is RequestState.SIGNED

    def test_serialized_field_names(self, init_request):
        data = json.loads(asyncio.run(init_request()).to_json_string())
        assert set(data) == {
            "applicationId",
            "providerId",
            "sessionId",
            "context",
            "parameters",
            "appCallbackUrl",
            "signature",
            "redirectUrl",
            "timeStamp",
            "options",
            "sdkVersion",
            "state",
        }

    def test_invalid_json(self, request_kwargs):
        from claimattest.core.request import ProofRequest

        with pytest.raises(ClaimAttestError) as exc:
            ProofRequest.from_json_string("not json", **request_kwargs())
        assert exc.value.kind is ErrorKind.INVALID_PARAM

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda d: d.pop("signature"),
            lambda d: d.update(sessionId=""),
            lambda d: d.update(appCallbackUrl="nope"),
            lambda d: d.update(parameters={"a": 1}),
            lambda d: d.update(options={"variant": "unknown"}),
            lambda d: d.update(options="oops"),
            lambda d: d.update(options=[1]),
            lambda d: d.update(context="x"),
            lambda d: d.update(context={"contextAddress": 5, "contextMessage": "m"}),
            lambda d: d.update(state="exploded"),
        ],
    )
    def test_invalid_fields(self, init_request, request_kwargs, mutate):
        from claimattest.core.request import ProofRequest

        data = json.loads(asyncio.run(init_request()).to_json_string())
        mutate(data)
        with pytest.raises(ClaimAttestError) as exc:
            ProofRequest.from_json_string(json.dumps(data), **request_kwargs())
        assert exc.value.kind is ErrorKind.INVALID_PARAM

    def test_linked_state_survives_round_trip(self, init_request, request_kwargs, backend):
        from claimattest.core.request import ProofRequest

        async def scenario():
            request = await init_request()
            await request.get_request_url()
            return request

        request = asyncio.run(scenario())
        assert request.state is RequestState.LINKED

        restored = ProofRequest.from_json_string(request.to_json_string(), **request_kwargs())
        assert restored.state is RequestState.LINKED
        for mutate in (
            lambda r: r.add_context("0xabc", "late"),
            lambda r: r.set_params({"email": "a@b.c"}),
            lambda r: r.set_redirect_url("https://app.example.com/done"),
        ):
            with pytest.raises(ClaimAttestError) as exc:
                mutate(restored)
            assert exc.value.kind is ErrorKind.SESSION_LIFECYCLE

    def test_missing_state_restores_signed(self, init_request, request_kwargs):
        from claimattest.core.request import ProofRequest

        data = json.loads(asyncio.run(init_request()).to_json_string())
        data.pop("state")
        restored = ProofRequest.from_json_string(json.dumps(data), **request_kwargs())
        assert restored.state is RequestState.SIGNED
        restored.add_context("0xabc", "order 42")


# ===========================================================================
# start_session
# ===========================================================================


class TestStartSession:
    def test_default_callback_verifies_and_delivers_proof(
        self, init_request, backend, status_payload, make_proof, witness_signers
    ):
        proof = make_proof(witness_signers)
        backend.status_payloads = [
            {"message": "ok"},
            status_payload("any", "PROOF_SUBMITTED", [proof.to_dict()]),
        ]
        recorder = Recorder()

        async def scenario():
            request = await init_request()
            await request.get_request_url()
            task = await request.start_session(recorder.on_success, recorder.on_error)
            return request, await task

        request, state = asyncio.run(scenario())
        assert state is PollState.SUCCEEDED
        assert recorder.errors == []
        assert recorder.successes[0].identifier == proof.identifier
        assert request.state is RequestState.TERMINAL
        assert len(backend.calls_to("/api/sdk/session/")) == 2

    def test_unverifiable_proof_fails(self, init_request, backend, status_payload, make_proof, witness_signers):
        proof = make_proof(witness_signers[:1])
        backend.status_payloads = [status_payload("any", "PROOF_SUBMITTED", [proof.to_dict()])]
        recorder = Recorder()

        async def scenario():
            request = await init_request()
            task = await request.start_session(recorder.on_success, recorder.on_error)
            await task

        asyncio.run(scenario())
        assert recorder.successes == []
        assert recorder.errors[0].kind is ErrorKind.PROOF_NOT_VERIFIED

    def test_custom_callback(self, init_request, backend, status_payload):
        from claimattest.core.session import CUSTOM_CALLBACK_SUCCESS_MESSAGE

        backend.status_payloads = [status_payload("any", "PROOF_SUBMITTED")]
        recorder = Recorder()

        async def scenario():
            request = await init_request()
            request.set_app_callback_url("https://app.example.com/cb")
            await request.get_request_url()
            await (await request.start_session(recorder.on_success, recorder.on_error))

        asyncio.run(scenario())
        assert recorder.successes == [CUSTOM_CALLBACK_SUCCESS_MESSAGE]

    def test_restart_after_terminal_rejected(self, init_request, backend, status_payload):
        backend.status_payloads = [status_payload("any", "PROOF_SUBMITTED")]
        recorder = Recorder()

        async def scenario():
            request = await init_request()
            request.set_app_callback_url("https://app.example.com/cb")
            await (await request.start_session(recorder.on_success, recorder.on_error))
            with pytest.raises(ClaimAttestError) as exc:
                await request.start_session(recorder.on_success, recorder.on_error)
            return exc.value

        assert asyncio.run(scenario()).kind is ErrorKind.SESSION_LIFECYCLE
        assert len(recorder.successes) == 1

    def test_cancel_session(self, init_request, registry):
        recorder = Recorder()

        async def scenario():
            request = await init_request()
            await request.get_request_url()
            task = await request.start_session(recorder.on_success, recorder.on_error)
            assert request.state is RequestState.SESSION_POLLING
            assert request.cancel_session()
            return request, await task

        request, state = asyncio.run(scenario())
        assert state is PollState.CANCELLED
        assert [e.kind for e in recorder.errors] == [ErrorKind.SESSION_LIFECYCLE]
        assert request.state is RequestState.LINKED
        assert request.cancel_session() is False
        assert len(registry) == 0

    def test_second_start_supersedes_first(self, init_request, backend, status_payload):
        backend.status_payloads = [{"message": "ok"}, status_payload("any", "PROOF_SUBMITTED")]
        first, second = Recorder(), Recorder()

        async def scenario():
            request = await init_request()
            request.set_app_callback_url("https://app.example.com/cb")
            task_a = await request.start_session(first.on_success, first.on_error)
            task_b = await request.start_session(second.on_success, second.on_error)
            return request, await asyncio.gather(task_a, task_b)

        request, states = asyncio.run(scenario())
        assert states == [PollState.CANCELLED, PollState.SUCCEEDED]
        assert first.errors[0].kind is ErrorKind.SESSION_LIFECYCLE
        assert len(second.successes) == 1
        assert request.state is RequestState.TERMINAL
