import random

import pytest

from oarigin.models.room import GameGenre, GameMode
from oarigin.services.prompt_builder import (
    BANNED_NAMES,
    NarrationContext,
    build_opening_prompt,
    build_prompt,
    story_phase,
    voice_instruction,
)


def _ctx(**kwargs):
    base = dict(genre=GameGenre.FANTASY, alive_players=["Alice"], current_player="Alice")
    base.update(kwargs)
    return NarrationContext(**base)


@pytest.mark.parametrize(
    "alive,needle",
    [
        (["Alice"], "second-person singular"),
        (["Alice", "Bob"], "you both"),
        (["Alice", "Bob", "Cara"], "your group"),
    ],
)
def test_voice_depends_on_alive_count(alive, needle):
    assert needle in voice_instruction(_ctx(alive_players=alive))


def test_nobody_alive_asks_for_conclusion_and_end_token():
    prompt = build_prompt(_ctx(alive_players=[], dead_players=["Alice"], current_player=""))

    assert "conclusion" in prompt
    assert "[GAME_ENDED]" in prompt


def test_player_input_is_mandatory_and_quoted():
    prompt = build_prompt(_ctx(player_input="I open the chest"))

    assert 'Mandatory' in prompt
    assert '"I open the chest"' in prompt
    assert "50-100 words" in prompt


def test_empty_input_lets_environment_drive():
    prompt = build_prompt(_ctx(player_input="   "))

    assert "environment" in prompt
    assert "Mandatory" not in prompt


def test_last_death_is_acknowledged_and_newcomers_introduced():
    prompt = build_prompt(
        _ctx(
            alive_players=["Alice", "Dan"],
            dead_players=["Bob", "Cara"],
            new_players=["Dan"],
            story_log=["The gate opens."],
        )
    )

    assert "Cara has died" in prompt
    assert "Bob has died" not in prompt
    assert "Introduce Dan" in prompt
    assert "1. The gate opens." in prompt


def test_mode_drives_the_format_instruction():
    choices = build_prompt(_ctx(mode=GameMode.MULTIPLE_CHOICE))
    prose = build_prompt(_ctx(mode=GameMode.FREE_TEXT))

    assert "Choices:" in choices
    assert "3 to 5" in choices
    assert "Choices:" not in prose
    assert "prose only" in prose


def test_opening_prompt_mentions_party_and_bans_names():
    prompt = build_opening_prompt(
        _ctx(alive_players=["Alice", "Bob"], genre=GameGenre.HORROR),
        rng=random.Random(7),
    )

    assert "Horror adventure for 2 players: Alice, Bob" in prompt
    assert "you both" in prompt
    for name in BANNED_NAMES:
        assert name in prompt


@pytest.mark.parametrize("count,phase", [(0, "opening"), (3, "rising"), (6, "climax"), (12, "resolution")])
def test_story_phase_thresholds(count, phase):
    assert story_phase(count) == phase
