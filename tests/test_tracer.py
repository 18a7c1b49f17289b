"""Tests for the agentflow.tracer framework."""

from __future__ import annotations

from pathlib import Path
from uuid import uuid4

import pytest
import yaml
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.outputs import ChatGeneration, LLMResult

from agentflow.tracer.callback import TracerCallbackHandler, _serialize_messages
from agentflow.tracer.context import (
    _active_tracer,
    _current_span,
    get_active_tracer,
    get_current_span,
    set_active_tracer,
    set_current_span,
)
from agentflow.tracer.decorators import (
    trace_agent_run,
    trace_delegation,
    trace_llm,
    trace_tool,
    trace_workflow,
)
from agentflow.tracer.exporter import YAMLExporter
from agentflow.tracer.span import Span, SpanKind
from agentflow.tracer.tracer import Tracer


class NamedAgent:
    def __init__(self, name: str):
        self.name = name

    @trace_agent_run()
    async def run(self, input: str):
        return await self.ask(input)

    @trace_llm()
    async def ask(self, input: str):
        return input.upper()


# ---------------------------------------------------------------------------
# Span
# ---------------------------------------------------------------------------


class TestSpan:
    def test_defaults(self):
        span = Span(kind=SpanKind.AGENT_RUN, name="support")
        assert len(span.span_id) == 12
        assert span.status == "ok"
        assert span.end_time is None
        assert span.children == []

    def test_finish_records_duration(self):
        span = Span(kind=SpanKind.TOOL_CALL, name="lookup")
        span.finish()
        assert span.end_time is not None
        assert span.duration_ms >= 0
        assert span.status == "ok"

    def test_finish_with_error(self):
        span = Span(kind=SpanKind.TOOL_CALL, name="lookup")
        span.finish(error=RuntimeError("not found"))
        assert span.status == "error"
        assert span.error == "not found"

    def test_iter_spans_depth_first(self):
        root = Span(kind=SpanKind.WORKFLOW, name="pipeline")
        first = Span(kind=SpanKind.AGENT_RUN, name="a")
        nested = Span(kind=SpanKind.LLM_CALL, name="llm")
        second = Span(kind=SpanKind.AGENT_RUN, name="b")
        root.add_child(first)
        first.add_child(nested)
        root.add_child(second)

        assert [s.name for s in root.iter_spans()] == ["pipeline", "a", "llm", "b"]
        assert nested.parent is first

    def test_to_dict(self):
        parent = Span(kind=SpanKind.AGENT_RUN, name="support")
        child = Span(kind=SpanKind.LLM_CALL, name="llm")
        child.set_attribute("model", "gpt-4o-mini")
        child.finish()
        parent.add_child(child)
        parent.finish()

        d = parent.to_dict()
        assert d["kind"] == "agent_run"
        assert d["name"] == "support"
        assert d["status"] == "ok"
        assert "error" not in d
        assert d["children"][0]["kind"] == "llm_call"
        assert d["children"][0]["attributes"]["model"] == "gpt-4o-mini"

    def test_to_dict_no_children(self):
        span = Span(kind=SpanKind.LLM_CALL, name="llm")
        d = span.to_dict()
        assert "children" not in d
        assert "end_time" not in d


# ---------------------------------------------------------------------------
# Context vars
# ---------------------------------------------------------------------------


class TestContext:
    def test_default_none(self):
        assert get_current_span() is None
        assert get_active_tracer() is None

    def test_set_and_reset_span(self):
        span = Span(kind=SpanKind.LLM_CALL, name="test")
        token = set_current_span(span)
        assert get_current_span() is span
        _current_span.reset(token)
        assert get_current_span() is None

    def test_set_and_reset_tracer(self):
        tracer = Tracer()
        token = set_active_tracer(tracer)
        assert get_active_tracer() is tracer
        _active_tracer.reset(token)
        assert get_active_tracer() is None


# ---------------------------------------------------------------------------
# Tracer
# ---------------------------------------------------------------------------


class TestTracer:
    def test_activate_deactivate(self):
        tracer = Tracer()
        token = tracer.activate()
        assert get_active_tracer() is tracer
        tracer.deactivate(token)
        assert get_active_tracer() is None

    def test_start_end_span(self):
        tracer = Tracer()
        span, token = tracer.start_span(SpanKind.WORKFLOW, "pipeline", {"steps": 2})
        assert get_current_span() is span
        assert tracer.last_root is span
        assert span.attributes == {"steps": 2}

        child, child_token = tracer.start_span(SpanKind.AGENT_RUN, "support")
        assert get_current_span() is child
        assert child.parent is span
        assert child in span.children

        tracer.end_span(child, child_token)
        assert get_current_span() is span
        assert child.duration_ms is not None

        tracer.end_span(span, token)
        assert get_current_span() is None
        assert tracer.roots == [span]

    def test_end_span_with_error(self):
        tracer = Tracer()
        span, token = tracer.start_span(SpanKind.LLM_CALL, "test")
        tracer.end_span(span, token, error=RuntimeError("fail"))
        assert span.status == "error"
        assert span.error == "fail"

    @pytest.mark.asyncio
    async def test_span_context_manager(self):
        tracer = Tracer()
        parent, parent_token = tracer.start_span(SpanKind.AGENT_RUN, "support")
        async with tracer.span(SpanKind.LLM_CALL, "completion") as span:
            assert get_current_span() is span
            assert span.parent is parent
        assert get_current_span() is parent
        assert span.status == "ok"
        assert span.duration_ms is not None
        tracer.end_span(parent, parent_token)

    @pytest.mark.asyncio
    async def test_span_context_manager_error(self):
        tracer = Tracer()
        with pytest.raises(ValueError, match="boom"):
            async with tracer.span(SpanKind.TOOL_CALL, "lookup") as span:
                raise ValueError("boom")
        assert span.status == "error"
        assert span.error == "boom"
        assert get_current_span() is None

    def test_export_without_exporter_is_noop(self):
        tracer = Tracer()
        span, token = tracer.start_span(SpanKind.AGENT_RUN, "support")
        tracer.end_span(span, token)
        tracer.export()

    def test_export_writes_latest_root(self, tmp_path: Path):
        tracer = Tracer(exporter=YAMLExporter(output_dir=tmp_path))
        span, token = tracer.start_span(SpanKind.AGENT_RUN, "support")
        tracer.end_span(span, token)

        tracer.export()

        assert (tmp_path / f"trace_agent_run_{span.span_id}.yaml").exists()

    def test_callback_handler_property(self):
        tracer = Tracer()
        handler = tracer.callback_handler
        assert isinstance(handler, TracerCallbackHandler)
        assert tracer.callback_handler is handler


# ---------------------------------------------------------------------------
# YAMLExporter
# ---------------------------------------------------------------------------


class TestYAMLExporter:
    def test_export_creates_file(self, tmp_path: Path):
        exporter = YAMLExporter(output_dir=tmp_path / "traces")
        root = Span(kind=SpanKind.WORKFLOW, name="pipeline")
        child = Span(kind=SpanKind.AGENT_RUN, name="support")
        child.finish()
        root.add_child(child)
        root.finish()

        path = exporter.export(root, filename="test_trace.yaml")
        assert path.exists()

        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)

        assert data["kind"] == "workflow"
        assert data["name"] == "pipeline"
        assert data["children"][0]["name"] == "support"

    def test_export_auto_filename(self, tmp_path: Path):
        exporter = YAMLExporter(output_dir=tmp_path)
        root = Span(kind=SpanKind.AGENT_RUN, name="s")
        root.finish()
        path = exporter.export(root)
        assert path.name.startswith("trace_")
        assert path.name.endswith(f"{root.span_id}.yaml")

    def test_export_all(self, tmp_path: Path):
        exporter = YAMLExporter(output_dir=tmp_path)
        roots = [Span(kind=SpanKind.AGENT_RUN, name=n) for n in ("a", "b")]
        paths = exporter.export_all(roots)
        assert len(paths) == 2
        assert all(p.exists() for p in paths)


# ---------------------------------------------------------------------------
# TracerCallbackHandler
# ---------------------------------------------------------------------------


class TestSerializeMessages:
    def test_tool_call_correlation(self):
        messages = [[
            SystemMessage(content="Be brief."),
            HumanMessage(content="Where is order 7?"),
            AIMessage(content="", tool_calls=[{"name": "lookup", "args": {"id": 7}, "id": "c1"}]),
            ToolMessage(content="shipped", tool_call_id="c1", name="lookup"),
        ]]

        result = _serialize_messages(messages)

        assert [m["role"] for m in result] == ["system", "human", "ai", "tool"]
        assert result[2]["tool_calls"] == [{"name": "lookup", "args": {"id": 7}, "id": "c1"}]
        assert result[3]["tool_call_id"] == "c1"
        assert result[3]["name"] == "lookup"
        assert "tool_calls" not in result[1]


class TestTracerCallbackHandler:
    @pytest.mark.asyncio
    async def test_on_chat_model_start_populates_span(self):
        handler = TracerCallbackHandler()
        span = Span(kind=SpanKind.LLM_CALL, name="test")
        token = set_current_span(span)

        await handler.on_chat_model_start(
            serialized={"id": ["langchain", "chat_models", "openai", "ChatOpenAI"],
                        "kwargs": {"model_name": "gpt-4o"}},
            messages=[[HumanMessage(content="Hello")]],
            run_id=uuid4(),
            invocation_params={"tools": [{"type": "function", "function": {"name": "lookup"}}]},
        )

        assert span.attributes["model"] == "gpt-4o"
        assert span.attributes["request"]["messages"] == [{"role": "human", "content": "Hello"}]
        assert span.attributes["request"]["tools"] == ["lookup"]

        _current_span.reset(token)

    @pytest.mark.asyncio
    async def test_on_llm_end_populates_span(self):
        handler = TracerCallbackHandler()
        span = Span(kind=SpanKind.LLM_CALL, name="test")
        token = set_current_span(span)

        run_id = uuid4()
        await handler.on_chat_model_start(
            serialized={"id": ["ChatOpenAI"], "kwargs": {}},
            messages=[[SystemMessage(content="prompt")]],
            run_id=run_id,
        )
        assert span.attributes["model"] == "ChatOpenAI"

        message = AIMessage(content="on it", tool_calls=[{"name": "lookup", "args": {}, "id": "c9"}])
        result = LLMResult(
            generations=[[ChatGeneration(message=message)]],
            llm_output={"token_usage": {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150}},
        )
        await handler.on_llm_end(response=result, run_id=run_id)

        assert span.attributes["response"]["content"] == "on it"
        assert span.attributes["response"]["tool_calls"][0]["id"] == "c9"
        assert span.attributes["token_usage"] == {
            "prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150,
        }

        _current_span.reset(token)

    @pytest.mark.asyncio
    async def test_usage_falls_back_to_message_metadata(self):
        handler = TracerCallbackHandler()
        span = Span(kind=SpanKind.LLM_CALL, name="test")
        token = set_current_span(span)

        run_id = uuid4()
        await handler.on_chat_model_start(serialized={}, messages=[[HumanMessage(content="hi")]], run_id=run_id)
        message = AIMessage(
            content="hello",
            usage_metadata={"input_tokens": 3, "output_tokens": 2, "total_tokens": 5},
        )
        await handler.on_llm_end(response=LLMResult(generations=[[ChatGeneration(message=message)]]), run_id=run_id)

        assert span.attributes["token_usage"] == {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}

        _current_span.reset(token)

    @pytest.mark.asyncio
    async def test_on_llm_error_marks_span(self):
        handler = TracerCallbackHandler()
        span = Span(kind=SpanKind.LLM_CALL, name="test")
        token = set_current_span(span)

        run_id = uuid4()
        await handler.on_chat_model_start(
            serialized={"id": ["ChatOpenAI"], "kwargs": {}},
            messages=[[SystemMessage(content="prompt")]],
            run_id=run_id,
        )
        await handler.on_llm_error(error=RuntimeError("API error"), run_id=run_id)

        assert span.status == "error"
        assert "API error" in span.error

        _current_span.reset(token)

    @pytest.mark.asyncio
    async def test_ignores_non_llm_call_span(self):
        handler = TracerCallbackHandler()
        span = Span(kind=SpanKind.AGENT_RUN, name="support")
        token = set_current_span(span)

        run_id = uuid4()
        await handler.on_chat_model_start(
            serialized={"id": ["ChatOpenAI"], "kwargs": {}},
            messages=[[SystemMessage(content="prompt")]],
            run_id=run_id,
        )
        await handler.on_llm_error(error=RuntimeError("ignored"), run_id=run_id)

        assert "request" not in span.attributes
        assert span.status == "ok"

        _current_span.reset(token)


# ---------------------------------------------------------------------------
# Decorators
# ---------------------------------------------------------------------------


class TestDecorators:
    @pytest.mark.asyncio
    async def test_trace_llm_creates_span(self):
        tracer = Tracer()
        token = tracer.activate()
        parent, parent_token = tracer.start_span(SpanKind.AGENT_RUN, "parent")

        @trace_llm("my_llm_call")
        async def my_func():
            current = get_current_span()
            assert current.kind == SpanKind.LLM_CALL
            assert current.name == "my_llm_call"
            return "result"

        assert await my_func() == "result"
        assert get_current_span() is parent
        assert parent.children[0].name == "my_llm_call"
        assert parent.children[0].status == "ok"
        assert parent.children[0].duration_ms is not None

        tracer.end_span(parent, parent_token)
        tracer.deactivate(token)

    @pytest.mark.asyncio
    async def test_trace_llm_error(self):
        tracer = Tracer()
        token = tracer.activate()
        parent, parent_token = tracer.start_span(SpanKind.AGENT_RUN, "parent")

        @trace_llm("failing_call")
        async def failing():
            raise ValueError("fail!")

        with pytest.raises(ValueError, match="fail!"):
            await failing()

        assert parent.children[0].status == "error"
        assert parent.children[0].error == "fail!"
        assert get_current_span() is parent

        tracer.end_span(parent, parent_token)
        tracer.deactivate(token)

    @pytest.mark.asyncio
    async def test_no_tracer_passthrough(self):
        assert get_active_tracer() is None

        @trace_tool()
        async def execute_tool(tool_name: str):
            assert get_current_span() is None
            return 42

        assert await execute_tool("lookup") == 42

    @pytest.mark.asyncio
    async def test_agent_run_name_from_instance(self):
        tracer = Tracer()
        token = tracer.activate()

        assert await NamedAgent("support").run("hi") == "HI"

        root = tracer.last_root
        assert root.kind == SpanKind.AGENT_RUN
        assert root.name == "support"
        assert [c.kind for c in root.children] == [SpanKind.LLM_CALL]
        assert root.children[0].name == "ask"

        tracer.deactivate(token)

    @pytest.mark.asyncio
    async def test_tool_name_from_argument(self):
        tracer = Tracer()
        token = tracer.activate()
        parent, parent_token = tracer.start_span(SpanKind.AGENT_RUN, "support")

        @trace_tool()
        async def call_tool(self, tool_name: str, arguments: dict):
            current = get_current_span()
            assert current.kind == SpanKind.TOOL_CALL

        await call_tool(None, tool_name="order_lookup", arguments={})
        await call_tool(None, "refund", {})

        assert [c.name for c in parent.children] == ["order_lookup", "refund"]

        tracer.end_span(parent, parent_token)
        tracer.deactivate(token)

    @pytest.mark.asyncio
    async def test_delegation_nests_sub_agent_run(self):
        tracer = Tracer()
        token = tracer.activate()
        parent, parent_token = tracer.start_span(SpanKind.AGENT_RUN, "manager")

        @trace_delegation()
        async def delegate(sub_agent_name: str, task: str):
            return await NamedAgent(sub_agent_name).run(task)

        assert await delegate("researcher", task="find") == "FIND"

        delegation = parent.children[0]
        assert delegation.kind == SpanKind.SUB_AGENT_DELEGATION
        assert delegation.name == "researcher"
        assert delegation.children[0].kind == SpanKind.AGENT_RUN
        assert delegation.children[0].name == "researcher"

        tracer.end_span(parent, parent_token)
        tracer.deactivate(token)

    @pytest.mark.asyncio
    async def test_root_agent_run_auto_exports(self, tmp_path: Path):
        tracer = Tracer(exporter=YAMLExporter(output_dir=tmp_path))
        token = tracer.activate()

        await NamedAgent("support").run("hello")

        files = list(tmp_path.glob("trace_agent_run_*.yaml"))
        assert len(files) == 1
        with open(files[0], "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        assert data["name"] == "support"
        assert data["children"][0]["kind"] == "llm_call"

        tracer.deactivate(token)

    @pytest.mark.asyncio
    async def test_nested_hierarchy_exports_once(self, tmp_path: Path):
        """Workflow -> agent run -> tool -> delegation -> agent run -> llm."""
        tracer = Tracer(exporter=YAMLExporter(output_dir=tmp_path))
        token = tracer.activate()

        @trace_delegation()
        async def delegate(sub_agent_name: str):
            return await NamedAgent(sub_agent_name).run("nested")

        @trace_tool()
        async def call_tool(tool_name: str):
            return await delegate("writer")

        class Outer:
            name = "coordinator"

            @trace_agent_run()
            async def run(self):
                return await call_tool("delegate_writer")

        class Pipeline:
            name = "pipeline"

            @trace_workflow()
            async def execute(self):
                return await Outer().run()

        assert await Pipeline().execute() == "NESTED"

        files = list(tmp_path.glob("trace_*.yaml"))
        assert len(files) == 1
        with open(files[0], "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)

        assert data["kind"] == "workflow"
        agent = data["children"][0]
        assert (agent["kind"], agent["name"]) == ("agent_run", "coordinator")
        tool = agent["children"][0]
        assert (tool["kind"], tool["name"]) == ("tool_call", "delegate_writer")
        delegation = tool["children"][0]
        assert (delegation["kind"], delegation["name"]) == ("sub_agent_delegation", "writer")
        sub_run = delegation["children"][0]
        assert sub_run["name"] == "writer"
        assert sub_run["children"][0]["kind"] == "llm_call"

        tracer.deactivate(token)
