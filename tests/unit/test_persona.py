from __future__ import annotations

from reply_flow.persona import PersonaProfile, build_system_persona, clamp_text, resolve_tone


def test_known_tone_is_used():
    assert resolve_tone(" Friendly ") == ("friendly", "warm, upbeat, approachable")


def test_unknown_tone_falls_back_to_calm():
    assert resolve_tone("sarcastic")[0] == "calm"
    assert resolve_tone(None)[0] == "calm"


def test_description_is_collapsed_and_clamped():
    text = clamp_text("  lots   of\nspace  ")
    assert text == "lots of space"
    long = clamp_text("y" * 500)
    assert len(long) == 400
    assert long.endswith("…")


def test_persona_includes_name_profile_and_rules():
    persona = build_system_persona(
        PersonaProfile(first_name="Ada", last_name="Lovelace", description="Enjoys maths.", tone="serious")
    )
    assert "human character: Ada Lovelace." in persona
    assert "PROFILE:\nEnjoys maths." in persona
    assert "- serious: formal, measured." in persona
    assert "Max 12 words per reply." in persona
    assert persona == persona.strip()


def test_persona_without_profile():
    persona = build_system_persona(None)
    assert "PROFILE:\n(none)" in persona
    assert "- calm:" in persona
