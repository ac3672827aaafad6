"""Learner model for the writing coach: mastery score plus load and engagement flags."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict

from .analysis_policy import MASTERY_CAP, AnalysisResult


COGNITIVE_LOAD_LEVELS = ("low", "optimal", "high")
ENGAGEMENT_LEVELS = ("active", "passive")

DEFAULT_INITIAL_MASTERY = 30
COACHING_SUCCESS_INCREMENT = 5


@dataclass
class MasteryState:
    mastery: int = DEFAULT_INITIAL_MASTERY
    cognitive_load: str = "optimal"
    engagement: str = "passive"

    def to_dict(self) -> Dict:
        return asdict(self)


class MasteryModel:
    """
    Tracks a single learner's progress within one coaching session.

    ``mastery`` only ever moves up: every update takes the max of the current
    value and the newly computed one, and is capped at 100.
    """

    def __init__(self, initial_mastery: int = DEFAULT_INITIAL_MASTERY):
        initial = max(0, min(MASTERY_CAP, int(initial_mastery)))
        self.state = MasteryState(mastery=initial)

    @property
    def mastery(self) -> int:
        return self.state.mastery

    def _raise_to(self, value: int) -> int:
        self.state.mastery = min(MASTERY_CAP, max(self.state.mastery, value))
        return self.state.mastery

    def apply_analysis(self, result: AnalysisResult) -> int:
        """Raise mastery to the floor implied by ``result``."""
        if result.resets_cognitive_load:
            self.state.cognitive_load = "optimal"
        return self._raise_to(result.mastery_floor())

    def apply_coaching_success(self) -> int:
        self.state.engagement = "active"
        return self._raise_to(self.state.mastery + COACHING_SUCCESS_INCREMENT)

    def mark_engagement_active(self) -> None:
        self.state.engagement = "active"

    def snapshot(self) -> Dict:
        return self.state.to_dict()
