"""Client for the watsonx text-generation endpoint."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx

from ..errors import GenerationCallError
from ..types import DecodingParams

logger = logging.getLogger(__name__)

# Used when the backend returns no per-token log-probabilities.
FALLBACK_AVG_LOG_PROB = -1.5


@dataclass(slots=True)
class BackendCall:
    """Everything the backend needs for one generation."""

    credential: str
    composed_input: str
    seed: int
    params: DecodingParams
    model_id: str
    project_ref: str
    call_index: int = 0


@dataclass(slots=True)
class BackendReply:
    text: str
    token_logprobs: list[float] | None = None


class TextGenerationBackend(Protocol):
    async def generate(self, call: BackendCall, session: httpx.AsyncClient) -> BackendReply: ...


def estimate_token_count(text: str) -> int:
    return max(1, round(len(text.split()) * 1.3))


def summarize_reply(reply: BackendReply) -> tuple[int, float]:
    """Return ``(token_count, avg_log_prob)`` for a backend reply."""

    logprobs = reply.token_logprobs
    if logprobs:
        return len(logprobs), sum(logprobs) / len(logprobs)
    return estimate_token_count(reply.text), FALLBACK_AVG_LOG_PROB


class WatsonxTextBackend:
    """Async wrapper around ``/ml/v1/text/generation``."""

    def __init__(self, endpoint: str, *, api_version: str = "2024-08-01") -> None:
        self._endpoint = f"{endpoint.rstrip('/')}/ml/v1/text/generation"
        self._api_version = api_version

    @staticmethod
    def build_payload(call: BackendCall) -> dict[str, Any]:
        params = call.params
        parameters: dict[str, Any] = {
            "decoding_method": "greedy" if params.temperature == 0 else "sample",
            "temperature": params.temperature,
            "top_p": params.top_p,
            "top_k": params.top_k,
            "max_new_tokens": params.max_new_tokens,
            "random_seed": call.seed,
        }
        if params.stop:
            parameters["stop_sequences"] = list(params.stop)
        return {
            "model_id": call.model_id,
            "project_id": call.project_ref,
            "input": call.composed_input,
            "parameters": parameters,
            "return_options": {"token_logprobs": True, "token_ranks": True, "top_n_tokens": 0},
        }

    async def generate(self, call: BackendCall, session: httpx.AsyncClient) -> BackendReply:
        headers = {
            "Authorization": f"Bearer {call.credential}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        start = time.perf_counter()
        try:
            response = await session.post(
                self._endpoint,
                params={"version": self._api_version},
                json=self.build_payload(call),
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise GenerationCallError(
                f"HTTP error for call {call.call_index}: {exc}",
                error_type="http_error",
                call_index=call.call_index,
            ) from exc
        latency_ms = (time.perf_counter() - start) * 1000.0

        if response.status_code >= 400:
            body = response.text
            raise GenerationCallError(
                f"Generation error: {response.status_code} {body[:200]}",
                status_code=response.status_code,
                error_type=f"http_{response.status_code}",
                call_index=call.call_index,
            )
        logger.debug("Call %d completed in %.1f ms", call.call_index, latency_ms)

        try:
            data = response.json()
        except ValueError as exc:
            raise GenerationCallError(
                f"Invalid JSON from backend for call {call.call_index}",
                error_type="invalid_json",
                call_index=call.call_index,
            ) from exc
        return self.parse_reply(data, call_index=call.call_index)

    @staticmethod
    def parse_reply(data: Any, *, call_index: int = 0) -> BackendReply:
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            raise GenerationCallError(
                f"No results in backend reply for call {call_index}",
                error_type="no_results",
                call_index=call_index,
            )
        first = results[0]
        text = str(first.get("generated_text") or "").strip()
        tokens = first.get("generated_tokens") or first.get("tokens") or []
        logprobs = _extract_logprobs(tokens) if isinstance(tokens, list) else []
        return BackendReply(text=text, token_logprobs=logprobs or None)


def _extract_logprobs(tokens: Sequence[Any]) -> list[float]:
    values: list[float] = []
    for token in tokens:
        logprob = token.get("logprob") if isinstance(token, dict) else None
        values.append(float(logprob) if isinstance(logprob, (int, float)) else 0.0)
    return values


__all__ = [
    "BackendCall",
    "BackendReply",
    "FALLBACK_AVG_LOG_PROB",
    "TextGenerationBackend",
    "WatsonxTextBackend",
    "estimate_token_count",
    "summarize_reply",
]
