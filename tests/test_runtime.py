"""Tests for wiring an AgentFlow process from configuration."""

import pytest

from agentflow.agents import BaseAgent
from agentflow.agents.llm import BaseLlmAgent
from agentflow.config import AgentFlowConfig
from agentflow.exceptions import AgentConfigurationError, ProviderNotConfiguredError
from agentflow.outcome import Completed
from agentflow.planning.agent import PlanningAgent
from agentflow.runtime import AgentFlow, import_agent_class
from agentflow.storage.memory import InMemoryInterruptStore, InMemoryMemoryStore, InMemorySessionStore


class GreeterAgent(BaseAgent):
    name = 'greeter'

    async def run(self, input, context):
        return f"hello {input}"


class ChattyAgent(BaseLlmAgent):
    name = 'chatty'
    instructions = "Chat."


def build_flow(config: AgentFlowConfig | None = None) -> AgentFlow:
    return AgentFlow(
        config or AgentFlowConfig(),
        session_store=InMemorySessionStore(),
        interrupt_store=InMemoryInterruptStore(),
        memory_store=InMemoryMemoryStore(),
    )


# ---------------------------------------------------------------------------
# Agent class paths
# ---------------------------------------------------------------------------

class TestImportAgentClass:
    def test_resolves_agent_class(self):
        assert import_agent_class('agentflow.planning.agent:PlanningAgent') is PlanningAgent

    @pytest.mark.parametrize('path', [
        'agentflow.planning.agent',
        ':PlanningAgent',
        'agentflow.no_such_module:Agent',
        'agentflow.context:AgentContext',
        'agentflow.planning.agent:Missing',
    ])
    def test_rejects_bad_paths(self, path):
        with pytest.raises(AgentConfigurationError):
            import_agent_class(path)

    def test_configured_agents_are_validated_eagerly(self):
        config = AgentFlowConfig.model_validate({'agents': {'broken': 'agentflow.context:AgentContext'}})

        with pytest.raises(AgentConfigurationError):
            build_flow(config)


# ---------------------------------------------------------------------------
# AgentFlow
# ---------------------------------------------------------------------------

class TestAgentFlow:
    @pytest.mark.asyncio
    async def test_registered_agent_runs_through_executor(self):
        flow = build_flow()
        flow.register_class('greeter', GreeterAgent)

        outcome = await flow.executor('greeter', "ada").with_session('s1').execute()

        assert isinstance(outcome, Completed)
        assert outcome.result == "hello ada"
        assert flow.registry.get('greeter').interrupts is flow.interrupts
        context = await flow.state_manager.load_context('greeter', 's1')
        assert context.session_id == 's1'
        await flow.close()

    def test_llm_agent_requires_chat_provider(self):
        flow = build_flow()
        flow.register_class('chatty', ChattyAgent)

        with pytest.raises(ProviderNotConfiguredError):
            flow.registry.get('chatty')

    def test_scheduler_sweeps_interrupts(self):
        scheduler = build_flow().scheduler()

        assert 'expire-interrupts' in scheduler.schedules

    @pytest.mark.asyncio
    async def test_create_with_memory_backend(self):
        flow = await AgentFlow.create(AgentFlowConfig())

        assert flow.database is None
        assert flow.vector_memory is None
        assert flow.interrupts.default_expiry_hours == 24
        await flow.close()

    @pytest.mark.asyncio
    async def test_sql_backend_needs_dsn(self):
        config = AgentFlowConfig.model_validate({'storage': {'backend': 'sql'}})

        with pytest.raises(AgentConfigurationError):
            await AgentFlow.create(config)
