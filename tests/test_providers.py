"""Tests for the OpenAI and LangChain completion providers, with fake clients."""

import json
import unittest
from types import SimpleNamespace

from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from agentflow.llm import CompletionRequest, LangChainCompletionProvider, OpenAICompletionProvider, OpenAIEmbeddingProvider
from agentflow.llm.langchain import to_langchain_messages
from agentflow.llm.oai.chat import to_openai_messages, to_openai_tools

HISTORY = [
    {'role': 'system', 'content': 'Be brief.'},
    {'role': 'user', 'content': 'What is 2+2?'},
    {'role': 'assistant', 'content': '', 'tool_calls': [{'id': 'c1', 'name': 'calculator', 'arguments': {'a': 2, 'b': 2}}]},
    {'role': 'tool', 'content': {'value': 4}, 'tool_call_id': 'c1', 'tool_name': 'calculator'},
]


class FakeCompletions:
    def __init__(self, message, model='gpt-4o-mini'):
        self.message = message
        self.model = model
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        return SimpleNamespace(choices=[SimpleNamespace(message=self.message)], model=self.model, usage=usage)


class FakeEmbeddings:
    def __init__(self):
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2]) for _ in kwargs['input']])


def fake_client(message) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(message)))


class TestWireConversion(unittest.TestCase):

    def test_openai_messages(self):
        converted = to_openai_messages(HISTORY)

        self.assertEqual(converted[0], {'role': 'system', 'content': 'Be brief.'})
        self.assertIsNone(converted[2]['content'])
        self.assertEqual(converted[2]['tool_calls'][0]['function'], {'name': 'calculator', 'arguments': '{"a": 2, "b": 2}'})
        self.assertEqual(converted[3], {'role': 'tool', 'tool_call_id': 'c1', 'content': '{"value": 4}'})

    def test_openai_tools(self):
        tools = to_openai_tools([{'name': 'ping', 'description': 'Ping'}])

        self.assertEqual(tools[0]['type'], 'function')
        self.assertEqual(tools[0]['function']['parameters'], {'type': 'object', 'properties': {}})

    def test_langchain_messages(self):
        converted = to_langchain_messages(HISTORY)

        self.assertEqual([type(m) for m in converted], [SystemMessage, HumanMessage, AIMessage, ToolMessage])
        self.assertEqual(converted[2].tool_calls[0]['args'], {'a': 2, 'b': 2})
        self.assertEqual(converted[3].tool_call_id, 'c1')
        self.assertEqual(json.loads(converted[3].content), {'value': 4})
        with self.assertRaises(ValueError):
            to_langchain_messages([{'role': 'narrator', 'content': 'x'}])


class TestOpenAICompletionProvider(unittest.IsolatedAsyncioTestCase):

    async def test_text_answer_and_parameters(self):
        client = fake_client(SimpleNamespace(content='4', tool_calls=None))
        provider = OpenAICompletionProvider(client, 'gpt-4o-mini', default_params={'temperature': 0.1, 'max_tokens': 100})

        response = await provider.complete(CompletionRequest(
            messages=[{'role': 'user', 'content': 'What is 2+2?'}],
            max_tokens=50,
            json_format=True,
        ))

        call = client.chat.completions.calls[0]
        self.assertEqual(response.content, '4')
        self.assertEqual(response.usage['total_tokens'], 15)
        self.assertEqual(call['model'], 'gpt-4o-mini')
        self.assertEqual(call['temperature'], 0.1)
        self.assertEqual(call['max_completion_tokens'], 50)
        self.assertNotIn('max_tokens', call)
        self.assertEqual(call['response_format'], {'type': 'json_object'})

    async def test_tool_calls_are_parsed(self):
        calls = [
            SimpleNamespace(id='c1', function=SimpleNamespace(name='calculator', arguments='{"a": 1}')),
            SimpleNamespace(id='c2', function=SimpleNamespace(name='broken', arguments='{not json')),
        ]
        client = fake_client(SimpleNamespace(content=None, tool_calls=calls))
        provider = OpenAICompletionProvider(client, 'gpt-4o-mini')

        response = await provider.complete(CompletionRequest(
            messages=[{'role': 'user', 'content': 'go'}],
            tools=[{'name': 'calculator', 'description': 'Math', 'parameters': {'type': 'object', 'properties': {}}}],
            model='gpt-4o',
        ))

        self.assertTrue(response.has_tool_calls)
        self.assertEqual(response.tool_calls[0].arguments, {'a': 1})
        self.assertEqual(response.tool_calls[1].arguments, {})
        self.assertEqual(client.chat.completions.calls[0]['model'], 'gpt-4o')
        self.assertEqual(client.chat.completions.calls[0]['tools'][0]['function']['name'], 'calculator')


class TestOpenAIEmbeddingProvider(unittest.IsolatedAsyncioTestCase):

    async def test_embed_batch(self):
        embeddings = FakeEmbeddings()
        provider = OpenAIEmbeddingProvider(SimpleNamespace(embeddings=embeddings), 'text-embedding-3-small', dimensions=2)

        vectors = await provider.embed(['a', 'b'])
        single = await provider.embed('c')

        self.assertEqual(vectors, [[0.1, 0.2], [0.1, 0.2]])
        self.assertEqual(len(single), 1)
        self.assertEqual(embeddings.calls[0]['dimensions'], 2)
        self.assertEqual(provider.dimensions, 2)
        self.assertGreater(provider.estimate_cost('x' * 4000), 0)


class TestLangChainCompletionProvider(unittest.IsolatedAsyncioTestCase):

    async def test_plain_completion(self):
        model = GenericFakeChatModel(messages=iter([AIMessage(content='Paris')]))
        provider = LangChainCompletionProvider(model)

        response = await provider.complete(CompletionRequest(
            messages=[{'role': 'user', 'content': 'Capital of France?'}],
            model='fake',
        ))

        self.assertEqual(response.content, 'Paris')
        self.assertEqual(response.tool_calls, [])
        self.assertEqual(response.model, 'fake')
