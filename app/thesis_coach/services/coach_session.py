"""
Adaptive writing coach session.
Bundles the draft, learner model, conversation and latest analysis for one learner.
"""
from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
from uuid import uuid4

from flask import current_app

from .analysis_policy import AnalysisResult, evaluate
from .coaching_responder import GeminiCoachingResponder
from .conversation import (
    ROLE_AGENT,
    TAG_ENCOURAGEMENT,
    ChatMessage,
    ConversationCoordinator,
)
from .delays import ScheduledDelay
from .lexicon import classify
from .mastery_model import DEFAULT_INITIAL_MASTERY, MasteryModel


WRITING_TASK = {
    'title': "議題探討：AI 與教育的未來",
    'description': (
        "請撰寫一篇 200 字以內的短文，表達你對「AI 是否應該完全取代人類教師？」的看法。"
        "請包含明確的主張、支持的理由，以及具體的例子。"
    ),
    'goals': ["提出明確主張 (Claim)", "提供證據/例子 (Evidence)", "邏輯推論 (Reasoning)"],
}

GREETING = (
    "你好！我是你的寫作教練。今天我們要探討 AI 是否應該取代人類教師。"
    "你不需要一開始就寫得很完美，試著先寫下你的核心觀點，我會引導你完善論述。"
)


class CoachSession:
    """Explicit state for one learner drafting one essay."""

    def __init__(
        self,
        owner_id: int,
        responder=None,
        initial_mastery: int = DEFAULT_INITIAL_MASTERY,
        history_window: int = 3,
        analysis_delay_seconds: float = 0.0,
        reply_delay_seconds: float = 0.0,
    ):
        self.id = uuid4().hex
        self.owner_id = owner_id
        self.created_at = datetime.now(timezone.utc)
        self.last_active = self.created_at
        self.draft_text = ""
        self.latest_analysis: Optional[AnalysisResult] = None
        self.mastery = MasteryModel(initial_mastery)
        self._analysis_delay = ScheduledDelay(analysis_delay_seconds)
        self._reply_delay = ScheduledDelay(reply_delay_seconds)
        self.conversation = ConversationCoordinator(
            responder=responder or GeminiCoachingResponder(),
            mastery=self.mastery,
            history_window=history_window,
            reply_delay=self._reply_delay,
            messages=[ChatMessage(role=ROLE_AGENT, content=GREETING, tag=TAG_ENCOURAGEMENT)],
        )

    @property
    def ended(self) -> bool:
        return self._analysis_delay.cancelled

    def touch(self) -> None:
        self.last_active = datetime.now(timezone.utc)

    def update_draft(self, text: str) -> None:
        self.draft_text = text or ""
        self.mastery.mark_engagement_active()

    def analyze(self) -> Optional[AnalysisResult]:
        """Run the structural analysis on the current draft. Returns None if the session ended meanwhile."""
        text = self.draft_text
        if not self._analysis_delay.wait():
            return None

        result = evaluate(text, classify(text))
        mastery = self.mastery.apply_analysis(result)
        self.latest_analysis = result
        current_app.logger.info(
            f"Coach session {self.id}: analysis outcome={result.outcome}, length={result.text_length}, mastery={mastery}"
        )
        return result

    def send_message(self, text: str) -> Optional[ChatMessage]:
        return self.conversation.send_message(text, self.draft_text)

    def end(self) -> None:
        self._analysis_delay.cancel()
        self._reply_delay.cancel()

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'task': WRITING_TASK,
            'draft_text': self.draft_text,
            'learner_state': self.mastery.snapshot(),
            'conversation_state': self.conversation.state,
            'messages': self.conversation.to_list(),
            'latest_analysis': self.latest_analysis.to_dict() if self.latest_analysis else None,
            'created_at': self.created_at.isoformat(),
        }


class CoachSessionStore:
    """
    In-process registry of live coach sessions. Nothing here outlives the process.

    Each owner holds at most one session; creating a new one ends the old one.
    Sessions untouched for longer than ``idle_timeout`` are ended the next time
    the store is used.
    """

    def __init__(self, idle_timeout: Optional[timedelta] = None):
        # Structure: {session_id: CoachSession}
        self._sessions: Dict[str, CoachSession] = {}
        self._lock = threading.Lock()
        self.idle_timeout = idle_timeout

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, owner_id: int, responder=None) -> CoachSession:
        cfg = current_app.config
        session = CoachSession(
            owner_id=owner_id,
            responder=responder,
            initial_mastery=cfg.get('COACH_INITIAL_MASTERY', DEFAULT_INITIAL_MASTERY),
            history_window=cfg.get('COACH_HISTORY_WINDOW', 3),
            analysis_delay_seconds=cfg.get('COACH_ANALYSIS_DELAY_SECONDS', 0.0),
            reply_delay_seconds=cfg.get('COACH_REPLY_DELAY_SECONDS', 0.0),
        )
        with self._lock:
            replaced = [s for s in self._sessions.values() if s.owner_id == owner_id]
            for old in replaced:
                self._discard(old)
            self._sessions[session.id] = session
        self.evict_idle()
        current_app.logger.info(
            f"Created coach session {session.id} for user {owner_id} (replaced {len(replaced)})"
        )
        return session

    def get(self, session_id: str, owner_id: Optional[int] = None) -> Optional[CoachSession]:
        self.evict_idle()
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if owner_id is not None and session.owner_id != owner_id:
            return None
        session.touch()
        return session

    def end(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            self._discard(session)
        current_app.logger.info(f"Ended coach session {session_id}")
        return True

    def evict_idle(self, now: Optional[datetime] = None) -> int:
        """End every session idle longer than ``idle_timeout``. Returns how many were ended."""
        if self.idle_timeout is None:
            return 0
        cutoff = (now or datetime.now(timezone.utc)) - self.idle_timeout
        with self._lock:
            stale = [s for s in self._sessions.values() if s.last_active < cutoff]
            for session in stale:
                self._discard(session)
        if stale:
            current_app.logger.info(f"Evicted {len(stale)} idle coach sessions")
        return len(stale)

    def _discard(self, session: CoachSession) -> None:
        self._sessions.pop(session.id, None)
        session.end()


def get_session_store() -> CoachSessionStore:
    """Singleton getter for the coach session store."""
    if not hasattr(current_app, 'coach_sessions'):
        current_app.coach_sessions = CoachSessionStore(
            idle_timeout=current_app.config.get('COACH_SESSION_IDLE_TIMEOUT')
        )
    return current_app.coach_sessions
