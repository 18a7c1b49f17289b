"""Tests for YAML configuration loading and provider construction."""

import pytest
from pydantic import ValidationError

from agentflow.config import (
    AgentFlowConfig,
    AzureOpenAIChatConfig,
    ChunkingStrategy,
    DeepSeekChatConfig,
    OpenAIEmbeddingConfig,
    load_config,
)
from agentflow.config.llm import validate_chat_config
from agentflow.exceptions import ProviderNotConfiguredError
from agentflow.llm import CompletionProviderFactory, EmbeddingProviderFactory, OpenAICompletionProvider, OpenAIEmbeddingProvider

CONFIG_YAML = """
chat_llm:
  type: openai
  model: gpt-4o-mini
  api_key: ${AGENTFLOW_TEST_KEY}
  temperature: 0.2
embedding:
  type: openai
  model: text-embedding-3-large
execution:
  max_tool_rounds: 4
human_in_loop:
  default_expiry_hours: 2
  tool_permissions:
    transfer_funds:
      requires_approval: true
      reason: Moves money
vector_memory:
  chunking:
    strategy: paragraph
    chunk_size: 500
agents:
  support: myapp.agents:SupportAgent
"""


class TestLoadConfig:
    def test_yaml_with_environment_values(self, tmp_path, monkeypatch):
        monkeypatch.setenv('AGENTFLOW_TEST_KEY', 'sk-test')
        path = tmp_path / 'agentflow.yml'
        path.write_text(CONFIG_YAML, encoding='utf-8')

        config = load_config(str(path))

        assert config.chat_llm.model == 'gpt-4o-mini'
        assert config.chat_llm.api_key == 'sk-test'
        assert config.chat_llm.generation_params() == {'temperature': 0.2}
        assert config.embedding.model == 'text-embedding-3-large'
        assert config.execution.max_tool_rounds == 4
        assert config.execution.max_delegation_depth == 5
        assert config.human_in_loop.tool_permissions['transfer_funds'].requires_approval
        assert config.vector_memory.chunking.strategy == ChunkingStrategy.Paragraph
        assert config.vector_memory.chunking.overlap == 200
        assert config.agents == {'support': 'myapp.agents:SupportAgent'}

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / 'empty.yml'
        path.write_text('', encoding='utf-8')

        config = load_config(str(path))

        assert config == AgentFlowConfig()
        assert config.chat_llm is None
        assert config.storage.backend == 'memory'
        assert config.tracing.enabled is False
        assert config.human_in_loop.default_expiry_hours == 24
        assert config.vector_memory.rag.max_context_length == 4000

    def test_invalid_values_are_rejected(self):
        with pytest.raises(ValidationError):
            AgentFlowConfig.model_validate({'execution': {'max_tool_rounds': 0}})
        with pytest.raises(ValidationError):
            AgentFlowConfig.model_validate({'storage': {'backend': 'redis'}})
        with pytest.raises(ValidationError):
            AgentFlowConfig.model_validate({'human_in_loop': {'default_expiry_hours': 0}})


class TestChatConfig:
    def test_discriminated_by_type(self):
        azure = validate_chat_config({
            'type': 'azure_openai',
            'endpoint': 'https://example.openai.azure.com',
            'deployment': 'gpt4',
            'api_version': '2024-06-01',
            'model': 'gpt-4o',
            'api_key': 'key',
        })
        deepseek = validate_chat_config({'type': 'deepseek', 'model': 'deepseek-chat', 'api_key': 'key'})

        assert isinstance(azure, AzureOpenAIChatConfig)
        assert isinstance(deepseek, DeepSeekChatConfig)
        assert deepseek.endpoint == 'https://api.deepseek.com'

    def test_azure_requires_deployment(self):
        with pytest.raises(ValidationError):
            validate_chat_config({'type': 'azure_openai', 'endpoint': 'https://x', 'model': 'gpt-4o'})


class TestProviderFactories:
    def test_build_from_config(self):
        chat = CompletionProviderFactory.build(validate_chat_config({
            'type': 'openai', 'model': 'gpt-4o-mini', 'api_key': 'key', 'max_tokens': 256,
        }))
        embedding = EmbeddingProviderFactory.build(OpenAIEmbeddingConfig(type='openai', api_key='key'))

        assert isinstance(chat, OpenAICompletionProvider)
        assert chat.model == 'gpt-4o-mini'
        assert chat.default_params == {'max_tokens': 256}
        assert isinstance(embedding, OpenAIEmbeddingProvider)
        assert embedding.dimensions == 1536

    def test_default_and_missing(self):
        default = object()

        assert CompletionProviderFactory(default).get() is default
        with pytest.raises(ProviderNotConfiguredError):
            CompletionProviderFactory().get()
        with pytest.raises(ProviderNotConfiguredError):
            EmbeddingProviderFactory().get()
