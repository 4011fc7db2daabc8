"""Pytest fixtures and path configuration for reply-flow tests."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Callable, Mapping

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
for path in (SRC_DIR, REPO_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from reply_flow.config import EngineSettings  # noqa: E402
from reply_flow.generation.backend import BackendCall, BackendReply  # noqa: E402
from reply_flow.generation.credentials import (  # noqa: E402
    CredentialCache,
    IssuedToken,
    reset_shared_credential_caches,
)

ScriptedReply = BackendReply | BaseException | str


class FakeBackend:
    """Deterministic backend keyed by call index.

    ``replies`` maps call index to a reply, a plain string, or an exception to
    raise. Indices without an entry get ``default_text`` suffixed with the
    index. ``delays`` maps call index to seconds slept before replying.
    """

    def __init__(
        self,
        replies: Mapping[int, ScriptedReply] | None = None,
        *,
        default_text: str = "Candidate reply number",
        delays: Mapping[int, float] | None = None,
    ) -> None:
        self.replies = dict(replies or {})
        self.default_text = default_text
        self.delays = dict(delays or {})
        self.calls: list[BackendCall] = []

    async def generate(self, call: BackendCall, session) -> BackendReply:
        self.calls.append(call)
        delay = self.delays.get(call.call_index)
        if delay:
            await asyncio.sleep(delay)
        scripted = self.replies.get(call.call_index, f"{self.default_text} {call.call_index}")
        if isinstance(scripted, BaseException):
            raise scripted
        if isinstance(scripted, str):
            return BackendReply(text=scripted, token_logprobs=None)
        return scripted


class FakeIssuer:
    def __init__(self, *, ttl: float = 3600.0, error: Exception | None = None, delay: float = 0.0):
        self.ttl = ttl
        self.error = error
        self.delay = delay
        self.calls = 0

    async def issue(self, api_key: str) -> IssuedToken:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return IssuedToken(access_token=f"token-{self.calls}", expires_in=self.ttl)


@pytest.fixture(autouse=True)
def _isolated_credential_caches():
    reset_shared_credential_caches()
    yield
    reset_shared_credential_caches()


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(
        api_key="test-key",
        project_id="project-123",
        endpoint="https://watsonx.example.test",
        call_timeout_seconds=5.0,
    )


@pytest.fixture
def fake_issuer() -> FakeIssuer:
    return FakeIssuer()


@pytest.fixture
def credentials(fake_issuer: FakeIssuer) -> CredentialCache:
    return CredentialCache(fake_issuer, "test-key")


@pytest.fixture
def make_backend() -> Callable[..., FakeBackend]:
    return FakeBackend


@pytest.fixture
def make_issuer() -> Callable[..., FakeIssuer]:
    return FakeIssuer
