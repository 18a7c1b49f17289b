"""Tests for tool output conventions and toolbox authorization."""

import json

import pytest

from agentflow.context import AgentContext
from agentflow.exceptions import ToolExecutionError
from agentflow.tools.base import BaseTool
from agentflow.tools.toolbox import AuthorizationContext, Toolbox
from agentflow.tools.types import ToolError, ToolResult, is_error_output


class LookupTool(BaseTool):
    def definition(self):
        return {
            'name': 'lookup',
            'description': 'Look up an order',
            'parameters': {'type': 'object', 'properties': {'order_id': {'type': 'string'}}, 'required': ['order_id']},
        }

    async def execute(self, arguments, context):
        return self.result({'order_id': arguments['order_id'], 'status': 'shipped'})


class RefundTool(BaseTool):
    def definition(self):
        return {'name': 'refund', 'description': 'Refund an order', 'parameters': {'type': 'object', 'properties': {}}}

    async def execute(self, arguments, context):
        return self.result("refunded")


class SupportToolbox(Toolbox):
    name = 'support'
    tools = [LookupTool, RefundTool]
    gate = 'support.use'
    tool_gates = {RefundTool: 'support.refund'}


class AdminOnlyToolbox(Toolbox):
    name = 'admin'
    tools = [RefundTool]

    @staticmethod
    def policy(auth):
        return bool(auth.actor and auth.actor.get('admin'))


class ExplodingPolicyToolbox(Toolbox):
    name = 'exploding'
    tools = [LookupTool]

    @staticmethod
    def policy(auth):
        raise RuntimeError("policy bug")


def grants(*capabilities):
    return lambda capability, actor: capability in capabilities


# ---------------------------------------------------------------------------
# Tool outputs
# ---------------------------------------------------------------------------


class TestToolOutputs:
    def test_string_result_passes_through(self):
        assert ToolResult(result="4").to_json() == "4"

    def test_structured_result_is_json(self):
        assert json.loads(ToolResult(result={'a': 1}).to_json()) == {'a': 1}

    def test_error_shape(self):
        payload = ToolError(error="nope").to_json()
        assert json.loads(payload) == {'error': 'nope', 'success': False}
        assert is_error_output(payload)
        assert not is_error_output("4")

    def test_validate_arguments(self):
        with pytest.raises(ToolExecutionError, match="order_id"):
            LookupTool().validate_arguments({})
        LookupTool().validate_arguments({'order_id': '1'})

    def test_name_and_description(self):
        tool = LookupTool()
        assert tool.name == 'lookup'
        assert tool.description == 'Look up an order'

    @pytest.mark.asyncio
    async def test_execute(self):
        result = await LookupTool().execute({'order_id': 'A1'}, AgentContext("s"))
        assert json.loads(result) == {'order_id': 'A1', 'status': 'shipped'}


# ---------------------------------------------------------------------------
# Toolbox authorization
# ---------------------------------------------------------------------------


class TestToolbox:
    def context(self, session="s", **state):
        return AgentContext(session, state={'user_id': 1, **state})

    def test_gate_denied_hides_every_tool(self):
        context = self.context()
        auth = AuthorizationContext.from_agent_context(context, grants())
        assert SupportToolbox().authorized_tools(context, auth) == {}

    def test_tool_gate_filters_individual_tools(self):
        context = self.context()
        auth = AuthorizationContext.from_agent_context(context, grants('support.use'))
        assert list(SupportToolbox().authorized_tools(context, auth)) == ['lookup']

    def test_all_gates_granted(self):
        context = self.context()
        auth = AuthorizationContext.from_agent_context(context, grants('support.use', 'support.refund'))
        assert sorted(SupportToolbox().authorized_tools(context, auth)) == ['lookup', 'refund']

    def test_missing_check_denies_gated_toolbox(self):
        context = self.context()
        assert SupportToolbox().authorized_tools(context) == {}

    def test_policy_sees_actor(self):
        admin = AgentContext("a", state={'user_data': {'admin': True}})
        guest = AgentContext("g", state={'user_data': {'admin': False}})
        toolbox = AdminOnlyToolbox()
        assert list(toolbox.authorized_tools(admin)) == ['refund']
        assert toolbox.authorized_tools(guest) == {}

    def test_raising_policy_is_a_denial(self):
        assert ExplodingPolicyToolbox().authorized_tools(self.context()) == {}

    def test_results_cached_per_session(self):
        toolbox = SupportToolbox()
        context = self.context()
        first = toolbox.authorized_tools(context, AuthorizationContext.from_agent_context(context, grants('support.use')))
        again = toolbox.authorized_tools(context, AuthorizationContext.from_agent_context(context, grants()))
        assert again is first
        toolbox.clear_cache(context.session_id)
        assert toolbox.authorized_tools(context, AuthorizationContext.from_agent_context(context, grants())) == {}

    def test_session_cache_is_bounded(self):
        class SmallCacheToolbox(SupportToolbox):
            max_cached_sessions = 2

        toolbox = SmallCacheToolbox()
        first, second, third = self.context("a"), self.context("b"), self.context("c")
        cached_first = toolbox.authorized_tools(first)
        cached_second = toolbox.authorized_tools(second)
        toolbox.authorized_tools(first)
        toolbox.authorized_tools(third)

        assert toolbox.authorized_tools(first) is cached_first
        assert toolbox.authorized_tools(second) is not cached_second

    def test_should_include_tool_hook(self):
        class FilteredToolbox(Toolbox):
            name = 'filtered'
            tools = [LookupTool, RefundTool]

            def should_include_tool(self, tool, context):
                return tool is not RefundTool

        assert list(FilteredToolbox().authorized_tools(self.context())) == ['lookup']

    def test_actor_built_from_user_state(self):
        context = AgentContext("s", state={'user_id': 5, 'user_email': 'e@x.io'})
        auth = AuthorizationContext.from_agent_context(context)
        assert auth.actor == {'id': 5, 'email': 'e@x.io', 'name': None}
        assert AuthorizationContext.from_agent_context(AgentContext("anon")).actor is None
