"""
Conversation coordinator for the writing coach.
Owns the chat transcript and allows at most one coaching request in flight.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from flask import current_app

from .coaching_responder import ResponderConfigError, ResponderTransientError
from .delays import ScheduledDelay
from .mastery_model import MasteryModel


ROLE_USER = 'user'
ROLE_AGENT = 'agent'
ROLE_SYSTEM = 'system'

TAG_HINT = 'hint'
TAG_EXPLANATION = 'explanation'
TAG_ENCOURAGEMENT = 'encouragement'

STATE_IDLE = 'idle'
STATE_AWAITING_RESPONSE = 'awaiting_response'

DEFAULT_HISTORY_WINDOW = 3

CONFIG_FAILURE_NOTICE = "系統錯誤：API Key 未設定或無效。請聯絡管理員。"
TRANSIENT_FAILURE_NOTICE = "連線發生錯誤，請檢查網路狀態。"


def utcnow():
    return datetime.now(timezone.utc)


@dataclass
class ChatMessage:
    role: str
    content: str
    timestamp: datetime = field(default_factory=utcnow)
    tag: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'role': self.role,
            'content': self.content,
            'timestamp': self.timestamp.isoformat(),
            'tag': self.tag,
        }


@dataclass
class PendingTurn:
    """A user turn whose coaching reply has not arrived yet."""

    user_message: ChatMessage
    history: List[ChatMessage]


class ConversationCoordinator:
    """
    Serializes chat turns between the learner and a coaching responder.

    The coordinator is either idle or awaiting one response. A message sent
    while a response is outstanding is dropped, not queued. The responder sees
    the draft, the new message and the trailing ``history_window`` messages
    that preceded it.
    """

    def __init__(
        self,
        responder,
        mastery: MasteryModel,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        reply_delay: Optional[ScheduledDelay] = None,
        messages: Optional[List[ChatMessage]] = None,
    ):
        self.responder = responder
        self.mastery = mastery
        self.history_window = max(0, int(history_window))
        self.reply_delay = reply_delay or ScheduledDelay(0)
        self.messages: List[ChatMessage] = list(messages or [])
        self.state = STATE_IDLE
        # Guards state transitions; never held while the responder runs.
        self._lock = threading.Lock()

    @property
    def is_awaiting_response(self) -> bool:
        return self.state == STATE_AWAITING_RESPONSE

    def recent_history(self) -> List[ChatMessage]:
        if self.history_window == 0:
            return []
        return list(self.messages[-self.history_window:])

    def begin(self, text: str) -> Optional[PendingTurn]:
        """Accept a user message and enter the awaiting state, or return None if rejected."""
        if not text or not text.strip():
            return None
        with self._lock:
            if self.is_awaiting_response:
                current_app.logger.warning("Dropping chat message while a coaching reply is pending")
                return None

            history = self.recent_history()
            user_message = ChatMessage(role=ROLE_USER, content=text)
            self.messages.append(user_message)
            self.state = STATE_AWAITING_RESPONSE
        return PendingTurn(user_message=user_message, history=history)

    def complete(self, reply: str) -> ChatMessage:
        """Record a successful coaching reply."""
        agent_message = ChatMessage(role=ROLE_AGENT, content=reply, tag=TAG_HINT)
        with self._lock:
            self.messages.append(agent_message)
            self.mastery.apply_coaching_success()
            self.state = STATE_IDLE
        return agent_message

    def fail(self, error: Exception) -> ChatMessage:
        """Record a failed coaching call as a system notice. Mastery is left alone."""
        if isinstance(error, ResponderConfigError):
            notice = CONFIG_FAILURE_NOTICE
        else:
            notice = TRANSIENT_FAILURE_NOTICE
        system_message = ChatMessage(role=ROLE_SYSTEM, content=notice)
        with self._lock:
            self.messages.append(system_message)
            self.state = STATE_IDLE
        return system_message

    def send_message(self, text: str, draft_text: str = "") -> Optional[ChatMessage]:
        """
        Run one full chat turn.

        Returns the agent or system message that closed the turn, or None if
        the message was rejected (blank, or a reply is already pending).
        """
        pending = self.begin(text)
        if pending is None:
            return None

        if not self.reply_delay.wait():
            return self.fail(ResponderTransientError("coaching turn cancelled"))
        try:
            reply = self.responder.respond(draft_text, pending.user_message.content, pending.history)
        except ResponderConfigError as exc:
            current_app.logger.error(f"Coaching responder misconfigured: {exc}")
            return self.fail(exc)
        except Exception as exc:
            current_app.logger.error(f"Coaching responder failed: {exc}")
            return self.fail(exc)
        return self.complete(reply)

    def to_list(self) -> List[Dict]:
        return [message.to_dict() for message in self.messages]
