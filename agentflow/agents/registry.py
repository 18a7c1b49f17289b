import inspect
import logging
from typing import Any, Callable, Union

from agentflow.agents.base import BaseAgent
from agentflow.exceptions import AgentConfigurationError, AgentNotFoundError

logger = logging.getLogger(__name__)

AgentFactory = Union[type[BaseAgent], Callable[..., BaseAgent], BaseAgent]


class AgentRegistry:
    """Name to agent mapping with lazily built, cached instances.

    A factory is an agent instance, an agent class, or a callable taking
    either no arguments or the registry itself.
    """

    def __init__(self):
        self._factories: dict[str, AgentFactory] = {}
        self._instances: dict[str, BaseAgent] = {}

    def register(self, name: str, factory: AgentFactory) -> None:
        if name in self._factories:
            logger.warning("Agent %s is registered again; replacing the previous factory", name)
        self._factories[name] = factory
        self._instances.pop(name, None)

    def register_agent(self, name: str | None = None) -> Callable[[AgentFactory], AgentFactory]:
        """Decorator form of ``register``; defaults to the class ``name`` attribute."""
        def decorator(factory: AgentFactory) -> AgentFactory:
            self.register(name or getattr(factory, 'name'), factory)
            return factory
        return decorator

    def get(self, name: str) -> BaseAgent:
        if name in self._instances:
            return self._instances[name]
        if name not in self._factories:
            raise AgentNotFoundError(name, self.names())

        agent = self._build(name, self._factories[name])
        if not isinstance(agent, BaseAgent):
            raise AgentConfigurationError(name, f"factory produced {type(agent).__name__}, not an agent")
        self._instances[name] = agent
        return agent

    def __getitem__(self, name: str) -> BaseAgent:
        return self.get(name)

    def has(self, name: str) -> bool:
        return name in self._factories

    def __contains__(self, name: str) -> bool:
        return self.has(name)

    def names(self) -> list[str]:
        return sorted(self._factories)

    def unregister(self, name: str) -> None:
        self._factories.pop(name, None)
        self._instances.pop(name, None)

    def _build(self, name: str, factory: AgentFactory) -> Any:
        if isinstance(factory, BaseAgent):
            return factory
        if not callable(factory):
            raise AgentConfigurationError(name, "factory is not callable")
        try:
            required = [
                p for p in inspect.signature(factory).parameters.values()
                if p.default is p.empty and p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
            ]
        except (TypeError, ValueError):
            required = []
        return factory(self) if required else factory()
