"""Decoding plan builder.

Decides how many backend calls a request makes, which instruction variant
and seed each call uses, and how its sampling parameters widen with the call
index. Call 0 is always the conservative one.
"""

from __future__ import annotations

from typing import Sequence

from ..types import CallPlan, DecodingParams, GenerationRequest
from ..utils.random import RandomSource, derive_seeds

MAX_STOP_SEQUENCES = 6

DEFAULT_STOPS: tuple[str, ...] = (
    "\nAssistant:",
    "\nUser:",
    "\n[",
    "\n---",
    "```",
    "\n#",
)

DEFAULT_INSTRUCTION_VARIANTS: tuple[str, ...] = (
    "Be conservative and concise. Provide one clear, concrete suggestion the user can do next.",
    "Be concise and warm but precise. Offer one actionable tip with a brief reason.",
    "Ask one short clarifying question.",
    "Concisely decline or set a boundary if appropriate, briefly state why, and propose a practical alternative.",
    "Concisely offer a different approach in one sentence and include a small example or step.",
    "Be positive and direct and concise. Start with a verb and keep it under two sentences.",
)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def merge_stops(user_stops: Sequence[str] | None) -> list[str]:
    """Caller stops first, then defaults; de-duplicated, at most six."""

    merged: list[str] = []
    for stop in [*(user_stops or ()), *DEFAULT_STOPS]:
        if stop and stop not in merged:
            merged.append(stop)
    return merged[:MAX_STOP_SEQUENCES]


def _jitter(value: float, pct: float, low: float, high: float, rng: RandomSource) -> float:
    return clamp(value * (1.0 + rng.uniform(-pct, pct)), low, high)


def params_for_index(idx: int, base: DecodingParams, rng: RandomSource) -> DecodingParams:
    """Escalating-exploration schedule for call ``idx``."""

    if idx == 0:
        return DecodingParams(
            temperature=min(base.temperature, 0.25),
            top_p=min(base.top_p, 0.9),
            top_k=min(base.top_k, 40),
            max_new_tokens=base.max_new_tokens,
            stop=list(base.stop),
        )
    temperature = clamp(base.temperature + 0.05 * idx, 0.55, 1.05)
    top_p = clamp(base.top_p + 0.01 * idx, 0.85, 0.995)
    top_k = clamp(base.top_k + 10 * idx, 40, 200)

    temperature = _jitter(temperature, 0.08, 0.5, 1.1, rng)
    top_p = _jitter(top_p, 0.03, 0.8, 0.999, rng)
    top_k = int(clamp(round(top_k + rng.uniform(-6.0, 6.0)), 40, 220))
    return DecodingParams(
        temperature=temperature,
        top_p=top_p,
        top_k=top_k,
        max_new_tokens=base.max_new_tokens,
        stop=list(base.stop),
    )


def resolve_call_count(request: GenerationRequest, *, default: int = 6, max_calls: int = 8) -> int:
    if request.per_call_instructions:
        return min(len(request.per_call_instructions), max_calls)
    wanted = request.call_count if request.call_count is not None else default
    return int(clamp(int(wanted), 1, max_calls))


def resolve_base_params(request: GenerationRequest, defaults: DecodingParams) -> DecodingParams:
    base = defaults.merged(request.decoding)
    base.stop = merge_stops(base.stop)
    return base


def build_call_plan(
    request: GenerationRequest,
    base: DecodingParams,
    rng: RandomSource,
    *,
    default_call_count: int = 6,
    max_calls: int = 8,
) -> list[CallPlan]:
    """Return one ``CallPlan`` per backend call, ordered by call index.

    ``base`` must already carry the merged stop list (see
    ``resolve_base_params``). ``rng`` should be the request-scoped source.
    """

    count = resolve_call_count(request, default=default_call_count, max_calls=max_calls)
    if request.per_call_instructions:
        instructions = list(request.per_call_instructions[:max_calls])
    else:
        instructions = list(rng.shuffle(list(DEFAULT_INSTRUCTION_VARIANTS)))

    if request.sampling_seed is not None:
        seed_base = int(request.sampling_seed)
    else:
        seed_base = rng.seed_base()
    seeds = derive_seeds(count, seed_base)

    plans: list[CallPlan] = []
    for idx, seed in enumerate(seeds):
        plans.append(
            CallPlan(
                index=idx,
                instruction=instructions[idx % len(instructions)],
                seed=seed,
                params=params_for_index(idx, base, rng),
                variant_tag="primary" if idx == 0 else "alt",
            )
        )
    return plans


__all__ = [
    "DEFAULT_INSTRUCTION_VARIANTS",
    "DEFAULT_STOPS",
    "MAX_STOP_SEQUENCES",
    "build_call_plan",
    "clamp",
    "merge_stops",
    "params_for_index",
    "resolve_base_params",
    "resolve_call_count",
]
