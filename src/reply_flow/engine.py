"""Candidate generation and flow-ranking engine.

Wires the pipeline together: plan -> dispatch -> normalise -> score ->
select. Only configuration errors escape ``generate``; every other failure
is absorbed into ``meta.dropped``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Mapping

import httpx

from .config import EngineConfig, EngineSettings
from .generation.backend import TextGenerationBackend, WatsonxTextBackend
from .generation.credentials import CredentialCache, shared_credential_cache
from .generation.dispatcher import GenerationDispatcher, compose_input
from .generation.normalize import normalize_generations
from .generation.plan import build_call_plan, resolve_base_params
from .ranking.flow import FlowScorer
from .ranking.selection import DiversitySelector, ShortlistBounds
from .ranking.similarity import EmbedFn, Similarity, select_similarity
from .types import Candidate, DecodingParams, GenerationRequest, GenerationResponse, ResponseMeta
from .utils.random import RandomSource

logger = logging.getLogger(__name__)


class CandidateEngine:
    """Generates, scores and shortlists reply candidates for one prompt.

    Collaborators are injectable: ``backend`` (defaults to the watsonx
    client), ``credentials`` (defaults to the process-wide cache for the
    configured API key), ``embed``/``similarity`` (defaults to token
    overlap), ``scorer`` and ``random_source``.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        config: EngineConfig | None = None,
        *,
        backend: TextGenerationBackend | None = None,
        credentials: CredentialCache | None = None,
        embed: EmbedFn | None = None,
        similarity: Similarity | None = None,
        scorer: FlowScorer | None = None,
        random_source: RandomSource | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings if settings is not None else EngineSettings.from_env()
        self.config = config or EngineConfig()
        self._backend = backend
        self._credentials = credentials
        self._random = random_source or RandomSource()
        self._transport = transport
        self.scorer = scorer or FlowScorer(
            self.config.weights,
            similarity=similarity if similarity is not None else select_similarity(embed),
        )
        self.selector = DiversitySelector(self.config.selection)

    def _dispatcher(self) -> GenerationDispatcher:
        settings = self.settings
        if self._backend is None:
            self._backend = WatsonxTextBackend(settings.endpoint, api_version=settings.api_version)
        if self._credentials is None:
            self._credentials = shared_credential_cache(settings.iam_url, settings.api_key)
        return GenerationDispatcher(
            self._backend,
            self._credentials,
            model_id=settings.model_id,
            project_ref=settings.project_id,
            call_timeout_seconds=settings.call_timeout_seconds,
            transport=self._transport,
        )

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.settings.validate()
        cfg = self.config

        rng = self._random.for_request(request.sampling_seed)
        base = resolve_base_params(request, cfg.decoding)
        plans = build_call_plan(
            request,
            base,
            rng,
            default_call_count=cfg.default_call_count,
            max_calls=cfg.max_calls,
        )
        inputs = [
            compose_input(request.system_persona, request.context, request.prompt, plan.instruction)
            for plan in plans
        ]
        logger.debug("Dispatching %d generation calls", len(plans))

        dispatched = await self._dispatcher().dispatch(plans, inputs)
        cleaned, discarded = normalize_generations(dispatched.generations)
        if discarded:
            logger.info("Discarded %d generations that were empty after cleaning", discarded)

        if not cleaned:
            logger.warning(
                "No usable candidates (%d attempted, %d failed)", len(plans), dispatched.failed
            )
            return self._response([], dropped=len(plans), params=base)

        signals = await self.scorer.score(
            [raw.text for raw in cleaned],
            [raw.avg_log_prob for raw in cleaned],
            request.prompt.strip(),
        )
        scored = [
            Candidate(
                text=raw.text,
                token_count=raw.token_count,
                avg_log_prob=raw.avg_log_prob,
                probability=flow.prob,
                seed=raw.seed,
                variant_tag=raw.variant_tag,
                flow=flow,
                weights=replace(cfg.weights),
            )
            for raw, flow in zip(cleaned, signals)
        ]

        bounds = ShortlistBounds.resolve(
            request.min_return,
            request.max_return,
            request.prefer_count,
            cfg.selection,
        )
        selected = self.selector.select(scored, bounds, request.coverage_target)

        dropped = (len(plans) - len(cleaned)) + (len(scored) - len(selected))
        logger.info(
            "Selected %d of %d candidates (%d calls, %d failed, dropped=%d)",
            len(selected),
            len(scored),
            len(plans),
            dispatched.failed,
            dropped,
        )
        return self._response(selected, dropped=dropped, params=base)

    def generate_sync(self, request: GenerationRequest) -> GenerationResponse:
        return asyncio.run(self.generate(request))

    def _response(
        self, candidates: list[Candidate], *, dropped: int, params: DecodingParams
    ) -> GenerationResponse:
        return GenerationResponse(
            candidates=candidates,
            meta=ResponseMeta(
                model_id=self.settings.model_id,
                used_k=len(candidates),
                dropped=dropped,
                params=params,
            ),
        )


async def generate_ranked_candidates(
    payload: GenerationRequest | Mapping[str, Any],
    *,
    engine: CandidateEngine | None = None,
) -> GenerationResponse:
    """Convenience entry point accepting either a request or its wire form."""

    request = payload if isinstance(payload, GenerationRequest) else GenerationRequest.from_dict(payload)
    return await (engine or CandidateEngine()).generate(request)


__all__ = ["CandidateEngine", "generate_ranked_candidates"]
