import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from agentflow.exceptions import CallbackNotRegisteredError
from agentflow.outcome import RunOutcome

logger = logging.getLogger(__name__)

CallbackHandler = Callable[[RunOutcome, dict[str, Any], dict[str, Any]], Awaitable[None] | None]


@dataclass(frozen=True)
class CallbackDescriptor:
    """Names a completion handler and the payload to hand it.

    Only the handler id travels with a job; the handler itself is looked up
    in a ``CallbackRegistry`` when the job finishes.
    """
    handler_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {'handler_id': self.handler_id, 'payload': dict(self.payload)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'CallbackDescriptor':
        return cls(handler_id=data['handler_id'], payload=dict(data.get('payload') or {}))


class CallbackRegistry:
    def __init__(self):
        self._handlers: dict[str, CallbackHandler] = {}

    def register(self, handler_id: str) -> Callable[[CallbackHandler], CallbackHandler]:
        def decorator(handler: CallbackHandler) -> CallbackHandler:
            self._handlers[handler_id] = handler
            return handler
        return decorator

    def add(self, handler_id: str, handler: CallbackHandler) -> None:
        self._handlers[handler_id] = handler

    def has(self, handler_id: str) -> bool:
        return handler_id in self._handlers

    def resolve(self, handler_id: str) -> CallbackHandler:
        try:
            return self._handlers[handler_id]
        except KeyError:
            raise CallbackNotRegisteredError(handler_id) from None

    async def invoke(self, descriptor: CallbackDescriptor, outcome: RunOutcome, info: dict[str, Any]) -> None:
        handler = self.resolve(descriptor.handler_id)
        logger.debug("Invoking callback %s for %s", descriptor.handler_id, info.get('agent'))
        result = handler(outcome, info, dict(descriptor.payload))
        if inspect.isawaitable(result):
            await result
