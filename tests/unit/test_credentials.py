from __future__ import annotations

import asyncio
import json
import threading
from urllib.parse import parse_qs

import httpx
import pytest

from reply_flow.errors import CredentialError
from reply_flow.generation.credentials import (
    IAM_GRANT_TYPE,
    CredentialCache,
    IAMTokenIssuer,
    shared_credential_cache,
)


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_concurrent_callers_share_one_refresh(make_issuer):
    issuer = make_issuer(delay=0.01)
    cache = CredentialCache(issuer, "key")

    async def burst():
        return await asyncio.gather(*(cache.get_token() for _ in range(10)))

    tokens = asyncio.run(burst())
    assert issuer.calls == 1
    assert set(tokens) == {"token-1"}


def test_token_is_reused_until_refresh_margin(make_issuer):
    issuer = make_issuer(ttl=120.0)
    clock = _Clock()
    cache = CredentialCache(issuer, "key", refresh_margin_seconds=60.0, clock=clock)

    assert asyncio.run(cache.get_token()) == "token-1"
    clock.now = 59.0
    assert cache.is_fresh()
    assert asyncio.run(cache.get_token()) == "token-1"

    clock.now = 61.0
    assert not cache.is_fresh()
    assert asyncio.run(cache.get_token()) == "token-2"
    assert cache.expires_at == pytest.approx(181.0)
    assert issuer.calls == 2


def test_failed_refresh_propagates_and_next_call_retries(make_issuer):
    issuer = make_issuer(error=CredentialError("denied", status_code=401))
    cache = CredentialCache(issuer, "key")

    with pytest.raises(CredentialError):
        asyncio.run(cache.get_token())
    assert cache.expires_at is None

    issuer.error = None
    assert asyncio.run(cache.get_token()) == "token-2"


def test_invalidate_forces_refresh(make_issuer):
    issuer = make_issuer()
    cache = CredentialCache(issuer, "key")
    asyncio.run(cache.get_token())
    cache.invalidate()
    asyncio.run(cache.get_token())
    assert issuer.calls == 2


def test_shared_cache_is_keyed_by_url_and_key(make_issuer):
    factory = lambda url: make_issuer()  # noqa: E731
    first = shared_credential_cache("https://iam.test", "a", issuer_factory=factory)
    again = shared_credential_cache("https://iam.test", "a", issuer_factory=factory)
    other = shared_credential_cache("https://iam.test", "b", issuer_factory=factory)
    assert first is again
    assert first is not other


def test_iam_issuer_posts_form_and_reads_ttl():
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"access_token": "abc", "expires_in": 1200})

    issuer = IAMTokenIssuer("https://iam.test/identity/token", transport=httpx.MockTransport(handler))
    issued = asyncio.run(issuer.issue("secret"))

    assert issued.access_token == "abc"
    assert issued.expires_in == 1200.0
    assert seen["url"] == "https://iam.test/identity/token"
    assert seen["form"] == {"grant_type": [IAM_GRANT_TYPE], "apikey": ["secret"]}


def test_iam_issuer_defaults_ttl_when_missing():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=json.dumps({"access_token": "abc"}))

    issuer = IAMTokenIssuer("https://iam.test", transport=httpx.MockTransport(handler))
    assert asyncio.run(issuer.issue("secret")).expires_in == 3600.0


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(400, text="bad key"),
        httpx.Response(200, json={"expires_in": 10}),
        httpx.Response(200, text="not json"),
    ],
)
def test_iam_issuer_failures_raise_credential_error(response):
    issuer = IAMTokenIssuer("https://iam.test", transport=httpx.MockTransport(lambda request: response))
    with pytest.raises(CredentialError) as excinfo:
        asyncio.run(issuer.issue("secret"))
    assert excinfo.value.error_type == "credential_error"


def test_requests_on_separate_threads_share_one_refresh(make_issuer):
    issuer = make_issuer(delay=0.1)
    cache = CredentialCache(issuer, "key")
    start = threading.Barrier(2)
    results: dict[int, object] = {}

    def worker(slot: int) -> None:
        start.wait()
        try:
            results[slot] = asyncio.run(cache.get_token())
        except Exception as exc:  # recorded for the assertion below
            results[slot] = exc

    threads = [threading.Thread(target=worker, args=(slot,)) for slot in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert results == {0: "token-1", 1: "token-1"}
    assert issuer.calls == 1


def test_cancelled_waiter_does_not_break_the_shared_refresh(make_issuer):
    issuer = make_issuer(delay=0.05)
    cache = CredentialCache(issuer, "key")

    async def scenario():
        owner = asyncio.ensure_future(cache.get_token())
        await asyncio.sleep(0)
        impatient = asyncio.ensure_future(cache.get_token())
        await asyncio.sleep(0)
        impatient.cancel()
        return await owner

    assert asyncio.run(scenario()) == "token-1"
    assert issuer.calls == 1
