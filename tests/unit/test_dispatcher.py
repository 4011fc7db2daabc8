from __future__ import annotations

import asyncio

import pytest

from reply_flow.errors import CredentialError, GenerationCallError
from reply_flow.generation.backend import BackendReply
from reply_flow.generation.credentials import CredentialCache
from reply_flow.generation.dispatcher import GenerationDispatcher, compose_input
from reply_flow.types import CallPlan, DecodingParams


def _plans(count: int) -> list[CallPlan]:
    return [
        CallPlan(
            index=idx,
            instruction=f"instruction {idx}",
            seed=1000 + idx,
            params=DecodingParams(),
            variant_tag="primary" if idx == 0 else "alt",
        )
        for idx in range(count)
    ]


def _dispatch(backend, credentials, count: int, timeout: float = 5.0):
    dispatcher = GenerationDispatcher(
        backend,
        credentials,
        model_id="model",
        project_ref="proj",
        call_timeout_seconds=timeout,
    )
    return asyncio.run(dispatcher.dispatch(_plans(count), [f"input {i}" for i in range(count)]))


def test_compose_input_orders_sections():
    text = compose_input("You are Sam.", ["guest: hi", " ", "user: hello"], " How are you? ", "Be brief.")
    assert text.startswith("[SYSTEM]\nYou are Sam.\n\n[CONTEXT]\nguest: hi\n---\nuser: hello")
    assert "[INSTRUCTIONS]\nBe brief.\n\nImportant: Answer only" in text
    assert text.endswith("[USER]\nHow are you?\n\nAssistant: ")


def test_compose_input_omits_empty_persona_and_context():
    text = compose_input("", [], "hi", None)
    assert text.startswith("[INSTRUCTIONS]\nImportant:")
    assert "[SYSTEM]" not in text
    assert "[CONTEXT]" not in text


def test_successful_calls_are_returned_in_index_order(make_backend, credentials):
    backend = make_backend(
        {0: BackendReply("zero", [-0.2, -0.4]), 2: "two"},
        delays={0: 0.02},
    )
    result = _dispatch(backend, credentials, 3)

    assert [gen.call_index for gen in result.generations] == [0, 1, 2]
    assert result.generations[0].avg_log_prob == pytest.approx(-0.3)
    assert result.generations[0].token_count == 2
    assert result.generations[0].variant_tag == "primary"
    assert result.generations[2].avg_log_prob == -1.5
    assert result.failed == 0
    assert {call.credential for call in backend.calls} == {"token-1"}


def test_one_failure_does_not_cancel_siblings(make_backend, credentials):
    backend = make_backend(
        {
            1: GenerationCallError("rate limit", status_code=429, error_type="http_429"),
            3: RuntimeError("boom"),
        }
    )
    result = _dispatch(backend, credentials, 5)

    assert result.attempted == 5
    assert [gen.call_index for gen in result.generations] == [0, 2, 4]
    assert {(f.call_index, f.error_type) for f in result.failures} == {
        (1, "http_429"),
        (3, "RuntimeError"),
    }


def test_slow_call_is_recorded_as_timeout(make_backend, credentials):
    backend = make_backend(delays={1: 1.0})
    result = _dispatch(backend, credentials, 3, timeout=0.05)

    assert [gen.call_index for gen in result.generations] == [0, 2]
    assert [(f.call_index, f.error_type) for f in result.failures] == [(1, "timeout")]


def test_credential_failure_fails_every_call(make_backend, make_issuer):
    issuer = make_issuer(error=CredentialError("denied", status_code=401))
    backend = make_backend()
    result = _dispatch(backend, CredentialCache(issuer, "key"), 4)

    assert result.generations == []
    assert result.failed == 4
    assert {f.error_type for f in result.failures} == {"credential_error"}
    assert backend.calls == []


def test_empty_plan_makes_no_calls(make_backend, make_issuer):
    issuer = make_issuer()
    result = _dispatch(make_backend(), CredentialCache(issuer, "key"), 0)
    assert result.attempted == 0
    assert issuer.calls == 0
