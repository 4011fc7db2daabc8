"""Engine request and response types.

These types are shared by the planner, dispatcher, scorer and selector.
They are independent of any transport; ``from_dict``/``to_dict`` map them
onto the camelCase wire contract used by callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Literal, Mapping

VariantTag = Literal["primary", "alt"]

_DECODING_KEYS = ("temperature", "top_p", "top_k", "max_new_tokens", "stop")


@dataclass(slots=True)
class DecodingParams:
    """Sampling controls sent to the text-generation backend."""

    temperature: float = 0.6
    top_p: float = 0.95
    top_k: int = 60
    max_new_tokens: int = 64
    stop: list[str] = field(default_factory=list)

    def merged(self, overrides: Mapping[str, Any] | None) -> "DecodingParams":
        """Return a copy with caller overrides applied key by key."""

        if not overrides:
            return replace(self, stop=list(self.stop))
        unknown = sorted(set(overrides) - set(_DECODING_KEYS))
        if unknown:
            raise ValueError(f"Unknown decoding parameter(s): {', '.join(unknown)}")
        values: dict[str, Any] = {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "max_new_tokens": self.max_new_tokens,
            "stop": list(self.stop),
        }
        for key, value in overrides.items():
            if value is None:
                continue
            if key == "stop":
                if not isinstance(value, (list, tuple)):
                    raise ValueError("'stop' must be a list of strings")
                values["stop"] = [str(s) for s in value]
            elif key in ("top_k", "max_new_tokens"):
                values[key] = int(value)
            else:
                values[key] = float(value)
        return DecodingParams(**values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "max_new_tokens": self.max_new_tokens,
            "stop": list(self.stop),
        }


@dataclass(slots=True)
class FlowWeights:
    """Blend weights for the flow utility and the softmax temperature."""

    a: float = 1.0
    b: float = 0.8
    g: float = 0.2
    tau: float = 0.9

    def to_dict(self) -> dict[str, float]:
        return {"a": self.a, "b": self.b, "g": self.g, "tau": self.tau}


@dataclass(slots=True)
class GenerationRequest:
    """One candidate-generation invocation."""

    prompt: str
    context: list[str] = field(default_factory=list)
    system_persona: str = ""
    call_count: int | None = None
    per_call_instructions: list[str] | None = None
    decoding: Mapping[str, Any] | None = None
    min_return: int | None = None
    max_return: int | None = None
    prefer_count: int | None = None
    coverage_target: float | None = None
    sampling_seed: int | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "GenerationRequest":
        """Build a request from the camelCase input contract."""

        prompt = payload.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("Missing 'prompt' string")
        context = payload.get("context")
        instructions = payload.get("perCallInstructions")
        decoding = payload.get("decoding")
        if decoding is not None and not isinstance(decoding, Mapping):
            raise ValueError("'decoding' must be an object")
        return cls(
            prompt=prompt,
            context=[str(line) for line in context] if isinstance(context, list) else [],
            system_persona=str(payload.get("systemPersona") or ""),
            call_count=_optional_int(payload.get("callCount"), "callCount"),
            per_call_instructions=(
                [str(item) for item in instructions] if isinstance(instructions, list) else None
            ),
            decoding=decoding,
            min_return=_optional_int(payload.get("minReturn"), "minReturn"),
            max_return=_optional_int(payload.get("maxReturn"), "maxReturn"),
            prefer_count=_optional_int(payload.get("preferCount"), "preferCount"),
            coverage_target=_optional_float(payload.get("coverageTarget"), "coverageTarget"),
            sampling_seed=_optional_int(payload.get("samplingSeed"), "samplingSeed"),
        )


@dataclass(slots=True)
class CallPlan:
    """Instruction, seed and decoding parameters for one backend call."""

    index: int
    instruction: str
    seed: int
    params: DecodingParams
    variant_tag: VariantTag


@dataclass(slots=True)
class RawGeneration:
    """Successful output of one backend call, before cleaning."""

    text: str
    token_count: int
    avg_log_prob: float
    seed: int
    call_index: int
    variant_tag: VariantTag = "alt"


@dataclass(slots=True)
class CallFailure:
    """Captured failure of one backend call."""

    call_index: int
    seed: int
    error_type: str
    message: str


@dataclass(slots=True)
class FlowSignals:
    """Per-candidate conversational-fit signals."""

    sim_to_last_user: float
    length_penalty: float
    repetition_penalty: float
    total_penalty: float
    utility: float
    prob: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "simToLastUser": self.sim_to_last_user,
            "lengthPenalty": self.length_penalty,
            "repetitionPenalty": self.repetition_penalty,
            "totalPenalty": self.total_penalty,
            "utility": self.utility,
            "prob": self.prob,
        }


@dataclass(slots=True)
class Candidate:
    """A cleaned, scored reply ready for presentation.

    ``probability`` is the softmax value computed over the full scored set;
    it is not renormalised after selection prunes the set.
    """

    text: str
    token_count: int
    avg_log_prob: float
    probability: float
    seed: int
    variant_tag: VariantTag
    flow: FlowSignals
    weights: FlowWeights

    @property
    def utility(self) -> float:
        return self.flow.utility

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "tokenCount": self.token_count,
            "avgLogProb": self.avg_log_prob,
            "probability": self.probability,
            "seed": self.seed,
            "variantTag": self.variant_tag,
            "flow": self.flow.to_dict(),
            "weights": self.weights.to_dict(),
        }


@dataclass(slots=True)
class ResponseMeta:
    model_id: str
    used_k: int
    dropped: int
    params: DecodingParams

    def to_dict(self) -> dict[str, Any]:
        return {
            "modelId": self.model_id,
            "usedK": self.used_k,
            "dropped": self.dropped,
            "params": self.params.to_dict(),
        }


@dataclass(slots=True)
class GenerationResponse:
    candidates: list[Candidate]
    meta: ResponseMeta

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "meta": self.meta.to_dict(),
        }


def _optional_int(value: Any, name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"'{name}' must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{name}' must be an integer.") from exc


def _optional_float(value: Any, name: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"'{name}' must be a number.")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{name}' must be a number.") from exc


__all__ = [
    "CallFailure",
    "CallPlan",
    "Candidate",
    "DecodingParams",
    "FlowSignals",
    "FlowWeights",
    "GenerationRequest",
    "GenerationResponse",
    "RawGeneration",
    "ResponseMeta",
    "VariantTag",
]
