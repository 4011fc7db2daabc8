# ruff: noqa: E402
"""Generate a ranked shortlist of reply candidates for one prompt."""

from __future__ import annotations

# Ensure local src/ is on sys.path when running from the repo without installation
import os as _os
import sys as _sys

_REPO_ROOT = _os.path.abspath(_os.path.join(_os.path.dirname(__file__), ".."))
_SRC_PATH = _os.path.join(_REPO_ROOT, "src")
if _SRC_PATH not in _sys.path and _os.path.isdir(_SRC_PATH):
    _sys.path.insert(0, _SRC_PATH)

import argparse
import json
from pathlib import Path
from typing import Optional, Sequence

from reply_flow.config import EngineConfig, EngineSettings, load_engine_config
from reply_flow.engine import CandidateEngine
from reply_flow.errors import ConfigurationError
from reply_flow.persona import PersonaProfile, build_system_persona
from reply_flow.types import GenerationRequest
from reply_flow.utils import configure_logging

EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate, score and shortlist reply candidates for a prompt."
    )
    parser.add_argument("--prompt", type=str, required=True, help="Latest user utterance.")
    parser.add_argument(
        "--context",
        action="append",
        default=None,
        help="Prior conversation line, oldest first. Repeat for multiple lines.",
    )
    parser.add_argument(
        "--persona",
        type=str,
        default=None,
        help="Literal system persona text. Overrides --persona-name/--tone.",
    )
    parser.add_argument("--persona-name", type=str, default=None, help="Name for a generated persona.")
    parser.add_argument("--persona-description", type=str, default=None)
    parser.add_argument("--tone", type=str, default=None, help="Tone key for a generated persona.")
    parser.add_argument("--k", type=int, default=None, help="Number of backend calls to issue.")
    parser.add_argument(
        "--instruction",
        action="append",
        default=None,
        help="Per-call style instruction. Repeat to set the call count explicitly.",
    )
    parser.add_argument("--seed", type=int, default=None, help="Sampling seed for reproducible plans.")
    parser.add_argument("--min-return", type=int, default=None)
    parser.add_argument("--max-return", type=int, default=None)
    parser.add_argument("--prefer-count", type=int, default=None)
    parser.add_argument(
        "--coverage",
        type=float,
        default=None,
        help="Probability mass to cover when slicing the shortlist (clamped to [0.6, 0.98]).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional YAML file with decoding/weights/selection overrides.",
    )
    parser.add_argument("--log-level", type=str, default="INFO")
    return parser


def resolve_persona(args: argparse.Namespace) -> Optional[str]:
    if args.persona:
        return args.persona
    if args.persona_name or args.persona_description or args.tone:
        first, _, last = (args.persona_name or "").partition(" ")
        return build_system_persona(
            PersonaProfile(
                first_name=first,
                last_name=last,
                description=args.persona_description or "",
                tone=args.tone or "",
            )
        )
    return None


def build_request(args: argparse.Namespace) -> GenerationRequest:
    return GenerationRequest(
        prompt=args.prompt,
        context=list(args.context or []),
        system_persona=resolve_persona(args) or "",
        call_count=args.k,
        per_call_instructions=list(args.instruction) if args.instruction else None,
        min_return=args.min_return,
        max_return=args.max_return,
        prefer_count=args.prefer_count,
        coverage_target=args.coverage,
        sampling_seed=args.seed,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logger = configure_logging(args.log_level)

    try:
        config = load_engine_config(args.config) if args.config else EngineConfig()
        engine = CandidateEngine(EngineSettings.from_env(), config)
        response = engine.generate_sync(build_request(args))
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    print(json.dumps(response.to_dict(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
