from .factory import CompletionProviderFactory, EmbeddingProviderFactory
from .langchain import LangChainCompletionProvider
from .mixin import LLMMixin
from .oai import OpenAICompletionProvider, OpenAIEmbeddingProvider
from .types import CompletionProvider, CompletionRequest, CompletionResponse, ToolCallRequest

__all__ = [
    "CompletionProvider",
    "CompletionRequest",
    "CompletionResponse",
    "ToolCallRequest",
    "CompletionProviderFactory",
    "EmbeddingProviderFactory",
    "OpenAICompletionProvider",
    "OpenAIEmbeddingProvider",
    "LangChainCompletionProvider",
    "LLMMixin",
]
