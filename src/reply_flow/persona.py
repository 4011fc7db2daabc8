"""System persona text for role-played replies."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

DESCRIPTION_LIMIT = 400
DEFAULT_TONE = "calm"

TONE_HINTS: dict[str, str] = {
    "friendly": "warm, upbeat, approachable",
    "confident": "assured, clear, steady",
    "cheerful": "bright, lively, positive",
    "calm": "unhurried, relaxed, gentle",
    "enthusiastic": "energetic, encouraging",
    "serious": "formal, measured",
    "sad": "soft, low-key",
    "angry": "firm, clipped, fast",
}

_WHITESPACE_RE = re.compile(r"\s+")

_PERSONA_TEMPLATE = """\
You are role-playing as a human character: {name}.
You must stay fully in character at all times.

PROFILE:
{profile}

TONE TARGET:
- {tone}: {hint}.
- Let tone shape rhythm and phrasing, but not the facts.

STYLE (STRICT):
- Max 12 words per reply.
- Use plain, natural language (no labels, no emoji, no markdown).
- Vary sentence length slightly; concise but not robotic.
- Do not break character or explain rules.

SMALL TALK:
- For greetings or "how are you?", answer simply and naturally.
- Bounce back if appropriate (e.g., "How about you?").
- Never inject profile/hobbies unless the user asks directly.

PROFILE USE (STRICT RELEVANCE):
- Only mention PROFILE details if the user asks about them
  or if they clearly resolve a choice.
- Otherwise, ignore PROFILE content completely.

SAFETY & UNCERTAINTY:
- If unsafe, refuse briefly.
- If unclear, ask a short clarifying question.

OUTPUT:
- Reply ONLY with the in-character message.
- Start with a letter, not punctuation.
- End with ., !, or ?."""


@dataclass(slots=True)
class PersonaProfile:
    first_name: str = ""
    last_name: str = ""
    description: str = ""
    tone: str = DEFAULT_TONE


def clamp_text(text: Optional[str], limit: int = DESCRIPTION_LIMIT) -> str:
    if not text:
        return ""
    collapsed = _WHITESPACE_RE.sub(" ", text.strip())
    if len(collapsed) > limit:
        return collapsed[: limit - 1] + "…"
    return collapsed


def resolve_tone(tone: Optional[str]) -> tuple[str, str]:
    key = (tone or "").strip().lower()
    if key in TONE_HINTS:
        return key, TONE_HINTS[key]
    return DEFAULT_TONE, TONE_HINTS[DEFAULT_TONE]


def build_system_persona(profile: Optional[PersonaProfile]) -> str:
    profile = profile or PersonaProfile()
    tone, hint = resolve_tone(profile.tone)
    name = " ".join(part for part in (profile.first_name, profile.last_name) if part) or "(unnamed)"
    description = clamp_text(profile.description)
    return _PERSONA_TEMPLATE.format(
        name=name,
        profile=description or "(none)",
        tone=tone,
        hint=hint,
    )


__all__ = [
    "PersonaProfile",
    "TONE_HINTS",
    "build_system_persona",
    "clamp_text",
    "resolve_tone",
]
