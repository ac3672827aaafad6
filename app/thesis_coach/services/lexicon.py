"""Keyword lexicon for detecting rhetorical structure in Chinese essay drafts."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple


# Logical connectors (reasoning between sentences)
CONNECTORS: Tuple[str, ...] = ("因為", "所以", "因此", "然而", "但是", "雖然", "此外", "總之", "反之")

# Evidentiary markers (examples, data, citations)
EVIDENCE_MARKERS: Tuple[str, ...] = ("例如", "比如", "根據", "數據", "研究", "例子", "事實上")

# Stance markers (explicit claim or opinion)
OPINION_MARKERS: Tuple[str, ...] = ("我認為", "我覺得", "主張", "觀點", "應當", "不應", "相信")


@dataclass(frozen=True)
class Classification:
    """Presence flags for the three rhetorical categories."""

    has_connector: bool = False
    has_evidence: bool = False
    has_opinion: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            'has_connector': self.has_connector,
            'has_evidence': self.has_evidence,
            'has_opinion': self.has_opinion,
        }


def _contains_any(text: str, keywords: Tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def classify(text: str) -> Classification:
    """Flag each category whose keyword list has a substring hit anywhere in ``text``."""
    text = text or ""
    return Classification(
        has_connector=_contains_any(text, CONNECTORS),
        has_evidence=_contains_any(text, EVIDENCE_MARKERS),
        has_opinion=_contains_any(text, OPINION_MARKERS),
    )
