"""Concurrent fan-out of planned calls to the text-generation backend."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

import httpx

from ..errors import GenerationCallError
from ..types import CallFailure, CallPlan, RawGeneration
from .backend import BackendCall, TextGenerationBackend, summarize_reply
from .credentials import CredentialCache

logger = logging.getLogger(__name__)

_GUARD = (
    "Important: Answer only (no tags or headings). Be specific and helpful. "
    "Use one concrete detail or example where relevant. No emojis. No filler or rhetorical questions."
)


def compose_input(
    system_persona: str | None,
    context: Sequence[str] | None,
    prompt: str,
    instruction: str | None,
) -> str:
    """Render persona, context, instruction and prompt as one text block."""

    parts: list[str] = []
    persona = (system_persona or "").strip()
    if persona:
        parts.append(f"[SYSTEM]\n{persona}")
    lines = [line.strip() for line in (context or ()) if line and line.strip()]
    if lines:
        parts.append("[CONTEXT]\n" + "\n---\n".join(lines))
    instr = (instruction or "").strip()
    parts.append(f"[INSTRUCTIONS]\n{instr}\n\n{_GUARD}" if instr else f"[INSTRUCTIONS]\n{_GUARD}")
    parts.append(f"[USER]\n{prompt.strip()}")
    return "\n\n".join(parts) + "\n\nAssistant: "


@dataclass(slots=True)
class DispatchResult:
    """Outcome of one fan-out, ordered by call index."""

    generations: list[RawGeneration] = field(default_factory=list)
    failures: list[CallFailure] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.generations) + len(self.failures)

    @property
    def failed(self) -> int:
        return len(self.failures)


class GenerationDispatcher:
    """Issues every planned call concurrently and captures each outcome.

    A failing call never cancels its siblings; it is logged and reported as
    a ``CallFailure``. Each call is bounded by ``call_timeout_seconds``.
    """

    def __init__(
        self,
        backend: TextGenerationBackend,
        credentials: CredentialCache,
        *,
        model_id: str,
        project_ref: str,
        call_timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._backend = backend
        self._credentials = credentials
        self._model_id = model_id
        self._project_ref = project_ref
        self._timeout = call_timeout_seconds
        self._transport = transport

    async def dispatch(self, plans: Sequence[CallPlan], inputs: Sequence[str]) -> DispatchResult:
        if len(plans) != len(inputs):
            raise ValueError("Each call plan needs exactly one composed input.")
        if not plans:
            return DispatchResult()

        try:
            token = await self._credentials.get_token()
        except Exception as exc:
            logger.error(
                "Credential acquisition failed; dropping all %d planned calls: %s",
                len(plans),
                exc,
            )
            error_type = getattr(exc, "error_type", exc.__class__.__name__)
            return DispatchResult(
                failures=[
                    CallFailure(plan.index, plan.seed, error_type, str(exc)) for plan in plans
                ]
            )

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as session:
            outcomes = await asyncio.gather(
                *(
                    self._run_with_capture(session, plan, composed, token)
                    for plan, composed in zip(plans, inputs)
                )
            )

        result = DispatchResult()
        for outcome in sorted(outcomes, key=lambda item: item.call_index):
            if isinstance(outcome, CallFailure):
                result.failures.append(outcome)
            else:
                result.generations.append(outcome)
        if not result.generations:
            logger.error("All %d generation calls failed", len(plans))
        return result

    async def _run_with_capture(
        self,
        session: httpx.AsyncClient,
        plan: CallPlan,
        composed: str,
        token: str,
    ) -> RawGeneration | CallFailure:
        call = BackendCall(
            credential=token,
            composed_input=composed,
            seed=plan.seed,
            params=plan.params,
            model_id=self._model_id,
            project_ref=self._project_ref,
            call_index=plan.index,
        )
        try:
            reply = await asyncio.wait_for(self._backend.generate(call, session), self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Generation call %d timed out after %.1fs", plan.index, self._timeout)
            return CallFailure(plan.index, plan.seed, "timeout", f"timed out after {self._timeout}s")
        except GenerationCallError as exc:
            logger.warning(
                "Generation call %d failed (%s): %s", plan.index, exc.error_type, exc
            )
            return CallFailure(plan.index, plan.seed, exc.error_type, str(exc))
        except Exception as exc:
            logger.warning(
                "Generation call %d raised %s: %s", plan.index, exc.__class__.__name__, exc
            )
            return CallFailure(plan.index, plan.seed, exc.__class__.__name__, str(exc))

        token_count, avg_log_prob = summarize_reply(reply)
        return RawGeneration(
            text=reply.text,
            token_count=token_count,
            avg_log_prob=avg_log_prob,
            seed=plan.seed,
            call_index=plan.index,
            variant_tag=plan.variant_tag,
        )


__all__ = ["DispatchResult", "GenerationDispatcher", "compose_input"]
