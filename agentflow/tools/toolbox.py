import logging
from collections import OrderedDict
from typing import Any, Callable, ClassVar, Mapping, Union

from agentflow.context import AgentContext
from agentflow.tools.base import BaseTool

logger = logging.getLogger(__name__)

CapabilityCheck = Callable[[str, Any], bool]
ToolFactory = Union[type[BaseTool], Callable[[AgentContext], BaseTool]]


class AuthorizationContext:
    """The acting principal plus a host-supplied capability check.

    ``check(capability, actor)`` comes from the embedding application; with no
    check every gated capability is denied.
    """

    def __init__(self, actor: Any, check: CapabilityCheck | None = None):
        self.actor = actor
        self.check = check

    def allows(self, capability: str) -> bool:
        if self.check is None:
            logger.debug("No capability check configured, denying %s", capability)
            return False
        return bool(self.check(capability, self.actor))

    @classmethod
    def from_agent_context(cls, context: AgentContext, check: CapabilityCheck | None = None) -> 'AuthorizationContext':
        actor = context.get_state('user_data')
        if actor is None and context.get_state('user_id') is not None:
            actor = {
                'id': context.get_state('user_id'),
                'email': context.get_state('user_email'),
                'name': context.get_state('user_name'),
            }
        return cls(actor, check)


class Toolbox:
    """A named, authorizable group of tools.

    Subclasses declare the tools and gates as class attributes::

        class BillingToolbox(Toolbox):
            name = 'billing'
            description = 'Invoice management'
            tools = [ListInvoicesTool, RefundTool]
            gate = 'billing.read'
            tool_gates = {RefundTool: 'billing.refund'}

    A ``gate`` is a capability name checked through the authorization
    context; a ``policy`` is a predicate over it.  The policy is consulted
    first, and either one raising counts as a denial.
    """

    name: ClassVar[str] = 'toolbox'
    description: ClassVar[str] = ''
    tools: ClassVar[list[ToolFactory]] = []
    gate: ClassVar[str | None] = None
    policy: ClassVar[Callable[[AuthorizationContext], bool] | None] = None
    tool_gates: ClassVar[Mapping[ToolFactory, str]] = {}
    tool_policies: ClassVar[Mapping[ToolFactory, Callable[[AuthorizationContext], bool]]] = {}
    max_cached_sessions: ClassVar[int] = 256

    def __init__(self):
        self._cache: OrderedDict[str, dict[str, BaseTool]] = OrderedDict()

    def authorize(self, auth: AuthorizationContext) -> bool:
        return self._passes(type(self).policy, self.gate, auth, self.name)

    def should_include_tool(self, tool: ToolFactory, context: AgentContext) -> bool:
        """Hook for context-dependent filtering; includes every tool by default."""
        return True

    def authorized_tools(self, context: AgentContext, auth: AuthorizationContext | None = None) -> dict[str, BaseTool]:
        """Tools visible to *context*, keyed by tool name.

        Results are cached per session; the least recently used sessions are
        dropped beyond ``max_cached_sessions``.
        """
        if context.session_id in self._cache:
            self._cache.move_to_end(context.session_id)
            return self._cache[context.session_id]

        auth = auth or AuthorizationContext.from_agent_context(context)
        tools: dict[str, BaseTool] = {}
        if self.authorize(auth):
            for entry in self.tools:
                if not self.should_include_tool(entry, context):
                    continue
                if not self._passes(self.tool_policies.get(entry), self.tool_gates.get(entry), auth, entry):
                    continue
                tool = entry() if isinstance(entry, type) else entry(context)
                tools[tool.name] = tool
        else:
            logger.info("Toolbox %s denied for actor %r", self.name, auth.actor)

        self._cache[context.session_id] = tools
        while len(self._cache) > self.max_cached_sessions:
            self._cache.popitem(last=False)
        return tools

    def clear_cache(self, session_id: str | None = None) -> None:
        if session_id is None:
            self._cache.clear()
        else:
            self._cache.pop(session_id, None)

    @staticmethod
    def _passes(policy, gate: str | None, auth: AuthorizationContext, subject: Any) -> bool:
        try:
            if policy is not None:
                return bool(policy(auth))
            if gate is not None:
                return auth.allows(gate)
        except Exception as e:
            logger.warning("Authorization check for %r failed, treating as denied: %s", subject, e)
            return False
        return True
