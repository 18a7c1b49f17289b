from .chat import OpenAICompletionProvider
from .embedding import OpenAIEmbeddingProvider

__all__ = ["OpenAICompletionProvider", "OpenAIEmbeddingProvider"]
