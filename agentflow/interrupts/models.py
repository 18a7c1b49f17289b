from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ulid import ULID


class InterruptType(str, Enum):
    APPROVAL = "approval"
    CONFIRMATION = "confirmation"
    INPUT = "input"
    FEEDBACK = "feedback"


class InterruptStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


def new_interrupt_id() -> str:
    return str(ULID())


@dataclass
class AgentInterrupt:
    """A paused execution waiting on a human decision.

    Only ``PENDING`` records may transition; every other status is terminal.
    """
    session_id: str
    agent_name: str
    reason: str
    type: InterruptType = InterruptType.APPROVAL
    data: dict[str, Any] = field(default_factory=dict)
    status: InterruptStatus = InterruptStatus.PENDING
    id: str = field(default_factory=new_interrupt_id)
    workflow_id: str | None = None
    step_name: str | None = None
    modifications: dict[str, Any] | None = None
    rejection_reason: str | None = None
    user_response: Any = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def is_pending(self) -> bool:
        return self.status == InterruptStatus.PENDING

    def is_resolved(self) -> bool:
        return self.status != InterruptStatus.PENDING

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the record is, or should now be, expired."""
        if self.status == InterruptStatus.EXPIRED:
            return True
        return self.expires_at is not None and self.expires_at <= (now or datetime.now())

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'session_id': self.session_id,
            'workflow_id': self.workflow_id,
            'step_name': self.step_name,
            'agent_name': self.agent_name,
            'type': self.type.value,
            'reason': self.reason,
            'data': self.data,
            'status': self.status.value,
            'modifications': self.modifications,
            'rejection_reason': self.rejection_reason,
            'user_response': self.user_response,
            'resolved_by': self.resolved_by,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'AgentInterrupt':
        def _dt(value):
            return datetime.fromisoformat(value) if isinstance(value, str) else value

        return cls(
            id=data['id'],
            session_id=data['session_id'],
            agent_name=data['agent_name'],
            reason=data['reason'],
            type=InterruptType(data.get('type', InterruptType.APPROVAL)),
            data=dict(data.get('data') or {}),
            status=InterruptStatus(data.get('status', InterruptStatus.PENDING)),
            workflow_id=data.get('workflow_id'),
            step_name=data.get('step_name'),
            modifications=data.get('modifications'),
            rejection_reason=data.get('rejection_reason'),
            user_response=data.get('user_response'),
            resolved_by=data.get('resolved_by'),
            resolved_at=_dt(data.get('resolved_at')),
            expires_at=_dt(data.get('expires_at')),
            created_at=_dt(data.get('created_at')) or datetime.now(),
        )


class InterruptSignal(Exception):
    """Control-flow signal that pauses an execution for human input.

    Not an error: the agent boundary turns it into an ``Interrupted`` outcome.
    Tools and workflow steps must let it propagate.
    """

    def __init__(
            self,
            reason: str,
            data: dict[str, Any] | None = None,
            interrupt: AgentInterrupt | None = None,
            type: InterruptType = InterruptType.APPROVAL,
    ):
        self.reason = reason
        self.data = dict(data or {})
        self.interrupt = interrupt
        self.type = type
        super().__init__(reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            'interrupted': True,
            'interrupt_id': self.interrupt.id if self.interrupt else None,
            'reason': self.reason,
            'data': self.data,
            'message': f"Execution paused: {self.reason}",
        }
