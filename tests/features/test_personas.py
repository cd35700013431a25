"""Tests for persona prompts and sticky assignment."""

from datetime import timedelta

from vibecord.features.aichat.personas import (
    BUILTIN_PERSONAS,
    DEFAULT_PERSONA_NAME,
    GLAZER_PROMPT,
    PersonaAssigner,
    persona_prompt,
)
from vibecord.util.random_source import RandomSource

PERSONAS = {"argue": "Disagree.", "pirate": "Arr.", "robot": "Beep."}


def test_prompt_lookup_order():
    assert persona_prompt("pirate", PERSONAS) == "Arr."
    assert persona_prompt("unhinged", PERSONAS) == BUILTIN_PERSONAS["unhinged"]
    assert persona_prompt("argue", PERSONAS) == "Disagree."
    assert persona_prompt(DEFAULT_PERSONA_NAME, {}) == GLAZER_PROMPT


def test_assignment_is_sticky(clock):
    assigner = PersonaAssigner(timedelta(minutes=30), RandomSource(seed=3), clock=clock)

    first = assigner.persona_for("U1", PERSONAS)
    for _ in range(10):
        clock.advance(60)
        assert assigner.persona_for("U1", PERSONAS) == first


def test_assignment_expires(clock, scripted_random):
    random = scripted_random(pick_index=0)
    assigner = PersonaAssigner(timedelta(minutes=30), random, clock=clock)

    assert assigner.persona_for("U1", PERSONAS) == "argue"
    assigned_at = assigner.current("U1").assigned_at

    random.pick_index = 2
    clock.advance(30 * 60 - 1)
    assert assigner.persona_for("U1", PERSONAS) == "argue"

    clock.advance(1)
    assert assigner.persona_for("U1", PERSONAS) == "robot"
    assert assigner.current("U1").assigned_at == assigned_at + 30 * 60


def test_users_are_independent(clock, scripted_random):
    random = scripted_random(pick_index=1)
    assigner = PersonaAssigner(timedelta(minutes=30), random, clock=clock)

    assert assigner.persona_for("U1", PERSONAS) == "pirate"
    random.pick_index = 2
    assert assigner.persona_for("U2", PERSONAS) == "robot"
    assert assigner.persona_for("U1", PERSONAS) == "pirate"
    assert len(assigner) == 2


def test_no_personas_configured(clock):
    assigner = PersonaAssigner(timedelta(minutes=30), clock=clock)
    assert assigner.persona_for("U1", {}) == DEFAULT_PERSONA_NAME


def test_draws_cover_every_persona(clock):
    assigner = PersonaAssigner(timedelta(seconds=1), RandomSource(seed=11), clock=clock)
    seen = set()
    for _ in range(200):
        seen.add(assigner.persona_for("U1", PERSONAS))
        clock.advance(1)
    assert seen == set(PERSONAS)
