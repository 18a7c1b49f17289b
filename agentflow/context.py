"""Execution-scoped state container for a single agent invocation."""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping


@dataclass
class Message:
    """A single conversation history record.

    ``turn_uuid`` groups every message produced for one user turn, and
    ``variant_index`` distinguishes regenerated assistant replies within it.
    ``user_message_id`` is the history position of the user message a reply
    answers; ``feedback`` is a rating attached by the host application.
    """
    role: str
    content: Any = ''
    tool_name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[dict[str, Any]] | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    turn_uuid: str | None = None
    variant_index: int | None = None
    user_message_id: int | None = None
    feedback: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d['timestamp'] = self.timestamp.isoformat()
        return {k: v for k, v in d.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Message':
        timestamp = data.get('timestamp')
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            role=data['role'],
            content=data.get('content', ''),
            tool_name=data.get('tool_name'),
            tool_call_id=data.get('tool_call_id'),
            tool_calls=data.get('tool_calls'),
            timestamp=timestamp or datetime.now(),
            turn_uuid=data.get('turn_uuid'),
            variant_index=data.get('variant_index'),
            user_message_id=data.get('user_message_id'),
            feedback=data.get('feedback'),
        )


class AgentContext:
    """Mutable state for one ``(session_id, agent)`` run.

    The context performs no I/O. Loading and persisting it is the job of the
    ``StateManager``; the history is append-only for the duration of a run.
    """

    def __init__(
            self,
            session_id: str,
            user_input: Any = None,
            state: Mapping[str, Any] | None = None,
            history: Iterable[Message | Mapping[str, Any]] | None = None,
    ):
        self.session_id = session_id
        self._user_input = user_input
        self._state: dict[str, Any] = dict(state or {})
        self._history: list[Message] = []
        self._current_turn: str | None = None
        self._current_variant = 0
        self._current_user_message: int | None = None
        for record in history or []:
            message = record if isinstance(record, Message) else Message.from_dict(record)
            if message.role == 'user':
                self._current_user_message = len(self._history)
            self._history.append(message)
            if message.turn_uuid:
                self._current_turn = message.turn_uuid
                self._current_variant = message.variant_index or 0

    # -- User input ---------------------------------------------------------

    def get_user_input(self) -> Any:
        return self._user_input

    def set_user_input(self, user_input: Any) -> None:
        self._user_input = user_input

    # -- State --------------------------------------------------------------

    def get_state(self, key: str, default: Any = None) -> Any:
        return self._state.get(key, default)

    def set_state(self, key: str, value: Any) -> None:
        self._state[key] = value

    def load_state(self, state: Mapping[str, Any]) -> None:
        """Merge *state* into the current state; incoming keys win."""
        self._state.update(state)

    def get_all_state(self) -> dict[str, Any]:
        return dict(self._state)

    # -- History ------------------------------------------------------------

    def add_message(self, message: Message | Mapping[str, Any]) -> Message:
        """Append a message, stamping it with turn metadata."""
        if not isinstance(message, Message):
            message = Message.from_dict(message)

        if message.role == 'user':
            self._current_turn = message.turn_uuid or uuid.uuid4().hex
            self._current_variant = 0
            message.turn_uuid = self._current_turn
            message.variant_index = 0
            self._current_user_message = len(self._history)
        else:
            if message.user_message_id is None:
                message.user_message_id = self._current_user_message
            if message.turn_uuid is None:
                message.turn_uuid = self._current_turn
            if message.variant_index is None:
                message.variant_index = self._current_variant
            else:
                self._current_variant = message.variant_index

        self._history.append(message)
        return message

    def new_variant(self) -> int:
        """Start a new assistant variant under the current user turn."""
        self._current_variant += 1
        return self._current_variant

    def get_conversation_history(self) -> tuple[Message, ...]:
        return tuple(self._history)

    @property
    def current_turn(self) -> str | None:
        return self._current_turn

    # -- Serialization ------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            'session_id': self.session_id,
            'user_input': self._user_input,
            'state': self.get_all_state(),
            'history': [m.to_dict() for m in self._history],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'AgentContext':
        return cls(
            session_id=data['session_id'],
            user_input=data.get('user_input'),
            state=data.get('state') or {},
            history=data.get('history') or [],
        )

    def __repr__(self) -> str:
        return f"AgentContext(session_id={self.session_id!r}, messages={len(self._history)})"
