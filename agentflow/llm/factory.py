from agentflow.config.llm import ChatConfig, EmbeddingConfig
from agentflow.exceptions import ProviderNotConfiguredError
from agentflow.llm.types import CompletionProvider
from agentflow.memory.embedding import EmbeddingProvider


class CompletionProviderFactory:
    def __init__(self, default: CompletionProvider | None = None):
        self.default = default

    @classmethod
    def build(cls, config: ChatConfig) -> CompletionProvider:
        from .oai import OpenAICompletionProvider
        return OpenAICompletionProvider.from_config(config)

    def get(self, config: ChatConfig | None = None) -> CompletionProvider:
        if config:
            return self.build(config)
        if self.default:
            return self.default
        raise ProviderNotConfiguredError('chat completion')


class EmbeddingProviderFactory:
    def __init__(self, default: EmbeddingProvider | None = None):
        self.default = default

    @classmethod
    def build(cls, config: EmbeddingConfig) -> EmbeddingProvider:
        from .oai import OpenAIEmbeddingProvider
        return OpenAIEmbeddingProvider.from_config(config)

    def get(self, config: EmbeddingConfig | None = None) -> EmbeddingProvider:
        if config:
            return self.build(config)
        if self.default:
            return self.default
        raise ProviderNotConfiguredError('embedding')
