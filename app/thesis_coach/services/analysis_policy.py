"""
Structural analysis policy for the writing coach.
Maps lexicon flags and draft length to a diagnostic message and a mastery delta.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .lexicon import Classification, classify


MIN_ANALYZABLE_LENGTH = 50
LONG_DRAFT_LENGTH = 100
MASTERY_FLOOR_BASE = 40
LONG_DRAFT_BONUS = 10
MASTERY_CAP = 100

OUTCOME_TOO_SHORT = 'too_short'
OUTCOME_MISSING_STANCE = 'missing_stance'
OUTCOME_MISSING_EVIDENCE = 'missing_evidence'
OUTCOME_DISCONNECTED = 'disconnected'
OUTCOME_COMPLETE = 'complete'

MASTERY_DELTAS = {
    OUTCOME_TOO_SHORT: 0,
    OUTCOME_MISSING_STANCE: 2,
    OUTCOME_MISSING_EVIDENCE: 5,
    OUTCOME_DISCONNECTED: 5,
    OUTCOME_COMPLETE: 20,
}

DIAGNOSTICS = {
    OUTCOME_TOO_SHORT: (
        "[字數不足] 目前僅 {length} 字。試著運用「因為...所以...」的句型來擴充你的論點，"
        "解釋為什麼你會有這樣的想法。"
    ),
    OUTCOME_MISSING_STANCE: (
        "[觀點不明] 文章似乎在描述現象，但缺少了你的核心主張。"
        "請試著加入「我認為...」或「我的主張是...」來明確表達立場。"
    ),
    OUTCOME_MISSING_EVIDENCE: (
        "[缺乏證據] 你提出了明確的觀點，這很好！"
        "但若能加入「例如...」或「根據...」來提供具體例子，說服力會大幅提升。"
    ),
    OUTCOME_DISCONNECTED: (
        "[邏輯連接] 你的句子之間較為獨立。"
        "試著使用「然而」、「因此」或「此外」這些連接詞，讓文章讀起來更流暢。"
    ),
    OUTCOME_COMPLETE: (
        "[表現優異] 結構完整！包含了明確主張、具體證據與邏輯連接。"
        "建議你可以挑戰反面論點：思考一下反對你的人會怎麼說？"
    ),
}


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of a single structural analysis run."""

    outcome: str
    diagnostic_text: str
    mastery_delta: int
    text_length: int

    @property
    def resets_cognitive_load(self) -> bool:
        return self.outcome == OUTCOME_COMPLETE

    def mastery_floor(self) -> int:
        """Minimum mastery this result guarantees, capped at 100."""
        bonus = LONG_DRAFT_BONUS if self.text_length > LONG_DRAFT_LENGTH else 0
        return min(MASTERY_CAP, MASTERY_FLOOR_BASE + self.mastery_delta + bonus)

    def to_dict(self) -> Dict:
        return {
            'outcome': self.outcome,
            'diagnostic_text': self.diagnostic_text,
            'mastery_delta': self.mastery_delta,
            'text_length': self.text_length,
        }


def _pick_outcome(length: int, flags: Classification) -> str:
    # Priority chain: the first failing check wins.
    if length < MIN_ANALYZABLE_LENGTH:
        return OUTCOME_TOO_SHORT
    if not flags.has_opinion:
        return OUTCOME_MISSING_STANCE
    if not flags.has_evidence:
        return OUTCOME_MISSING_EVIDENCE
    if not flags.has_connector:
        return OUTCOME_DISCONNECTED
    return OUTCOME_COMPLETE


def evaluate(text: str, flags: Optional[Classification] = None) -> AnalysisResult:
    """Evaluate a draft. ``flags`` is computed from ``text`` when not supplied."""
    text = text or ""
    if flags is None:
        flags = classify(text)

    length = len(text)
    outcome = _pick_outcome(length, flags)
    return AnalysisResult(
        outcome=outcome,
        diagnostic_text=DIAGNOSTICS[outcome].format(length=length),
        mastery_delta=MASTERY_DELTAS[outcome],
        text_length=length,
    )
