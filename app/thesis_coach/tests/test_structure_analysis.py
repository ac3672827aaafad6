import pytest

from app.thesis_coach.services.analysis_policy import (
    OUTCOME_COMPLETE,
    OUTCOME_DISCONNECTED,
    OUTCOME_MISSING_EVIDENCE,
    OUTCOME_MISSING_STANCE,
    OUTCOME_TOO_SHORT,
    evaluate,
)
from app.thesis_coach.services.lexicon import Classification, classify


def _pad(text: str, length: int) -> str:
    """Pad with filler characters that match no keyword."""
    return text + "學" * (length - len(text))


def test_classify_empty_text_is_all_false():
    assert classify("") == Classification(False, False, False)
    assert classify(None) == Classification(False, False, False)


def test_classify_matches_substrings_anywhere():
    flags = classify("AI我認為不能取代老師，例如情感支持，因此老師仍然重要")
    assert flags == Classification(has_connector=True, has_evidence=True, has_opinion=True)


def test_classify_flags_are_independent():
    assert classify("根據研究顯示") == Classification(has_connector=False, has_evidence=True, has_opinion=False)
    assert classify("然而") == Classification(has_connector=True, has_evidence=False, has_opinion=False)
    assert classify("我覺得很好") == Classification(has_connector=False, has_evidence=False, has_opinion=True)


def test_classify_ignores_word_boundaries():
    # "不應該" contains the stance marker "不應"
    assert classify("老師不應該被取代").has_opinion is True


def test_short_text_wins_even_with_every_keyword():
    text = "我認為例如因此"
    result = evaluate(text, classify(text))

    assert result.outcome == OUTCOME_TOO_SHORT
    assert result.mastery_delta == 0
    assert "字數不足" in result.diagnostic_text
    assert f"{len(text)} 字" in result.diagnostic_text


def test_empty_text_is_too_short_with_floor_40():
    result = evaluate("")
    assert result.outcome == OUTCOME_TOO_SHORT
    assert result.text_length == 0
    assert result.mastery_floor() == 40


@pytest.mark.parametrize(
    "seed, outcome, delta",
    [
        ("AI 可以在課堂上幫忙批改作業", OUTCOME_MISSING_STANCE, 2),
        ("我認為 AI 可以在課堂上幫忙", OUTCOME_MISSING_EVIDENCE, 5),
        ("我認為 AI 例如可以批改作業", OUTCOME_DISCONNECTED, 5),
        ("我認為 AI 例如可以批改作業，因此", OUTCOME_COMPLETE, 20),
    ],
)
def test_priority_chain_outcomes(seed, outcome, delta):
    text = _pad(seed, 60)
    result = evaluate(text, classify(text))

    assert result.outcome == outcome
    assert result.mastery_delta == delta
    assert result.mastery_floor() == 40 + delta
    assert result.resets_cognitive_load is (outcome == OUTCOME_COMPLETE)


def test_long_draft_bonus_applies_above_100_characters():
    at_100 = _pad("我認為例如因此", 100)
    at_101 = _pad("我認為例如因此", 101)

    assert evaluate(at_100).mastery_floor() == 60
    assert evaluate(at_101).mastery_floor() == 70


def test_evaluate_is_deterministic():
    text = _pad("我認為 AI 可以在課堂上幫忙", 80)
    assert evaluate(text) == evaluate(text)


def test_boundary_at_50_characters():
    assert evaluate(_pad("", 49)).outcome == OUTCOME_TOO_SHORT
    assert evaluate(_pad("", 50)).outcome == OUTCOME_MISSING_STANCE
