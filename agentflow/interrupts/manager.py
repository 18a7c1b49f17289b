import logging
from datetime import datetime, timedelta
from typing import Any, Mapping

from agentflow.context import AgentContext
from agentflow.events import EventDispatcher, InterruptApproved, InterruptRejected, InterruptRequested
from agentflow.exceptions import InterruptAlreadyResolvedError, InterruptExpiredError, InterruptNotFoundError
from agentflow.interrupts.models import AgentInterrupt, InterruptSignal, InterruptStatus, InterruptType
from agentflow.storage.types import InterruptStore

logger = logging.getLogger(__name__)


class InterruptManager:
    """Creates, resolves and expires human-in-the-loop interrupts.

    Pending records past ``expires_at`` are expired both by the explicit
    ``expire_overdue`` sweep and lazily whenever a record is read or resolved.
    """

    def __init__(
            self,
            store: InterruptStore,
            dispatcher: EventDispatcher | None = None,
            *,
            default_expiry_hours: float = 24,
            tool_permissions: Mapping[str, Any] | None = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.default_expiry_hours = default_expiry_hours
        self.tool_permissions = dict(tool_permissions or {})

    # -- Creation -------------------------------------------------------------

    async def create(
            self,
            context: AgentContext,
            agent_name: str,
            reason: str,
            data: dict[str, Any] | None = None,
            type: InterruptType = InterruptType.APPROVAL,
            *,
            expires_in_hours: float | None = None,
            workflow_id: str | None = None,
            step_name: str | None = None,
    ) -> AgentInterrupt:
        hours = self.default_expiry_hours if expires_in_hours is None else expires_in_hours
        interrupt = AgentInterrupt(
            session_id=context.session_id,
            agent_name=agent_name,
            reason=reason,
            type=type,
            data=dict(data or {}),
            workflow_id=workflow_id or context.get_state('workflow_id'),
            step_name=step_name or context.get_state('workflow_step'),
            expires_at=datetime.now() + timedelta(hours=hours),
        )
        await self.store.save(interrupt)
        logger.info("Interrupt %s requested by %s: %s", interrupt.id, agent_name, reason)
        self._dispatch(InterruptRequested(
            agent_name=agent_name,
            session_id=context.session_id,
            interrupt_id=interrupt.id,
            reason=reason,
            data=interrupt.data,
        ))
        return interrupt

    async def interrupt(
            self,
            context: AgentContext,
            agent_name: str,
            reason: str,
            data: dict[str, Any] | None = None,
            type: InterruptType = InterruptType.APPROVAL,
            **kwargs: Any,
    ):
        """Persist an interrupt and raise the signal that pauses execution."""
        interrupt = await self.create(context, agent_name, reason, data, type, **kwargs)
        raise InterruptSignal(reason, interrupt.data, interrupt=interrupt, type=type)

    async def request_approval(self, context: AgentContext, agent_name: str, action: str, data: dict[str, Any] | None = None, **kwargs: Any):
        await self.interrupt(context, agent_name, f"Approval required: {action}", data, InterruptType.APPROVAL, **kwargs)

    async def request_confirmation(self, context: AgentContext, agent_name: str, message: str, data: dict[str, Any] | None = None, **kwargs: Any):
        await self.interrupt(context, agent_name, message, data, InterruptType.CONFIRMATION, **kwargs)

    async def request_input(self, context: AgentContext, agent_name: str, prompt: str, data: dict[str, Any] | None = None, **kwargs: Any):
        await self.interrupt(context, agent_name, prompt, data, InterruptType.INPUT, **kwargs)

    async def request_feedback(self, context: AgentContext, agent_name: str, subject: str, data: dict[str, Any] | None = None, **kwargs: Any):
        await self.interrupt(context, agent_name, f"Feedback requested: {subject}", data, InterruptType.FEEDBACK, **kwargs)

    # -- Resolution -----------------------------------------------------------

    async def approve(self, interrupt_id: str, modifications: dict[str, Any] | None = None, resolved_by: str | None = None) -> AgentInterrupt:
        interrupt = await self._pending(interrupt_id)
        interrupt.status = InterruptStatus.APPROVED
        interrupt.modifications = modifications
        await self._resolve(interrupt, resolved_by)
        self._dispatch(InterruptApproved(
            agent_name=interrupt.agent_name,
            session_id=interrupt.session_id,
            interrupt_id=interrupt.id,
            modifications=modifications,
            resolved_by=resolved_by,
        ))
        return interrupt

    async def reject(self, interrupt_id: str, reason: str | None = None, resolved_by: str | None = None) -> AgentInterrupt:
        interrupt = await self._pending(interrupt_id)
        interrupt.status = InterruptStatus.REJECTED
        interrupt.rejection_reason = reason
        await self._resolve(interrupt, resolved_by)
        self._dispatch(InterruptRejected(
            agent_name=interrupt.agent_name,
            session_id=interrupt.session_id,
            interrupt_id=interrupt.id,
            reason=reason,
            resolved_by=resolved_by,
        ))
        return interrupt

    async def cancel(self, interrupt_id: str, resolved_by: str | None = None) -> AgentInterrupt:
        interrupt = await self._pending(interrupt_id)
        interrupt.status = InterruptStatus.CANCELLED
        await self._resolve(interrupt, resolved_by)
        return interrupt

    async def respond(self, interrupt_id: str, response: Any, resolved_by: str | None = None) -> AgentInterrupt:
        """Answer an input/feedback interrupt; recorded as an approval."""
        interrupt = await self._pending(interrupt_id)
        interrupt.status = InterruptStatus.APPROVED
        interrupt.user_response = response
        await self._resolve(interrupt, resolved_by)
        self._dispatch(InterruptApproved(
            agent_name=interrupt.agent_name,
            session_id=interrupt.session_id,
            interrupt_id=interrupt.id,
            resolved_by=resolved_by,
        ))
        return interrupt

    # -- Queries --------------------------------------------------------------

    async def get(self, interrupt_id: str) -> AgentInterrupt:
        interrupt = await self.store.get(interrupt_id)
        if interrupt is None:
            raise InterruptNotFoundError(interrupt_id)
        await self._expire_if_overdue(interrupt)
        return interrupt

    async def get_pending(self, session_id: str | None = None, agent_name: str | None = None) -> list[AgentInterrupt]:
        records = await self.store.find(session_id=session_id, agent_name=agent_name, status=InterruptStatus.PENDING)
        pending = []
        for interrupt in records:
            if not await self._expire_if_overdue(interrupt):
                pending.append(interrupt)
        return pending

    async def get_for_session(self, session_id: str) -> list[AgentInterrupt]:
        return await self.store.find(session_id=session_id)

    async def get_for_agent(self, agent_name: str) -> list[AgentInterrupt]:
        return await self.store.find(agent_name=agent_name)

    async def check_status(self, interrupt_id: str) -> dict[str, Any]:
        try:
            interrupt = await self.get(interrupt_id)
        except InterruptNotFoundError:
            return {'status': 'not_found'}
        return {
            'status': interrupt.status.value,
            'is_pending': interrupt.is_pending(),
            'is_resolved': interrupt.is_resolved(),
            'modifications': interrupt.modifications,
            'rejection_reason': interrupt.rejection_reason,
            'user_response': interrupt.user_response,
        }

    def tool_permission(self, tool_name: str) -> Any:
        return self.tool_permissions.get(tool_name, self.tool_permissions.get('*'))

    def tool_requires_approval(self, tool_name: str) -> bool:
        permission = self.tool_permission(tool_name)
        if permission is None:
            return False
        if isinstance(permission, Mapping):
            return bool(permission.get('requires_approval', False))
        return bool(getattr(permission, 'requires_approval', False))

    # -- Maintenance ----------------------------------------------------------

    async def expire_overdue(self, now: datetime | None = None) -> int:
        now = now or datetime.now()
        count = 0
        for interrupt in await self.store.find(status=InterruptStatus.PENDING):
            if await self._expire_if_overdue(interrupt, now):
                count += 1
        if count:
            logger.info("Expired %d overdue interrupt(s)", count)
        return count

    async def cleanup(self, days: int = 30, now: datetime | None = None) -> int:
        """Delete resolved records older than *days*."""
        cutoff = (now or datetime.now()) - timedelta(days=days)
        stale = [
            interrupt.id for interrupt in await self.store.find()
            if interrupt.is_resolved() and interrupt.created_at < cutoff
        ]
        return await self.store.delete(stale)

    # -- Internals ------------------------------------------------------------

    async def _pending(self, interrupt_id: str) -> AgentInterrupt:
        interrupt = await self.store.get(interrupt_id)
        if interrupt is None:
            raise InterruptNotFoundError(interrupt_id)
        if await self._expire_if_overdue(interrupt):
            raise InterruptExpiredError(interrupt_id)
        if not interrupt.is_pending():
            raise InterruptAlreadyResolvedError(interrupt_id, interrupt.status.value)
        return interrupt

    async def _expire_if_overdue(self, interrupt: AgentInterrupt, now: datetime | None = None) -> bool:
        """Move an overdue pending record to ``EXPIRED``; True if it did."""
        if interrupt.is_pending() and interrupt.is_expired(now):
            interrupt.status = InterruptStatus.EXPIRED
            interrupt.resolved_at = now or datetime.now()
            await self.store.save(interrupt)
            logger.debug("Interrupt %s expired", interrupt.id)
            return True
        return False

    async def _resolve(self, interrupt: AgentInterrupt, resolved_by: str | None) -> None:
        interrupt.resolved_by = resolved_by
        interrupt.resolved_at = datetime.now()
        await self.store.save(interrupt)
        logger.info("Interrupt %s %s", interrupt.id, interrupt.status.value)

    def _dispatch(self, event) -> None:
        if self.dispatcher is not None:
            self.dispatcher.dispatch(event)
