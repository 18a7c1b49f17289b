import math
from abc import ABC, abstractmethod

from agentflow.exceptions import InputTooLongError


class EmbeddingProvider(ABC):
    """Turns text into vectors for the vector memory."""

    provider_name: str = 'unknown'
    max_input_length: int = 30000

    @property
    @abstractmethod
    def model(self) -> str:
        pass

    @property
    @abstractmethod
    def dimensions(self) -> int:
        pass

    @abstractmethod
    async def embed(self, texts: str | list[str]) -> list[list[float]]:
        """Embed one text or a batch; always returns one vector per input."""
        pass

    def check_inputs(self, texts: str | list[str]) -> list[str]:
        """Normalize *texts* to a list, rejecting overlong entries before any I/O."""
        items = [texts] if isinstance(texts, str) else list(texts)
        for text in items:
            if len(text) > self.max_input_length:
                raise InputTooLongError(len(text), self.max_input_length)
        return items

    def estimate_tokens(self, text: str) -> int:
        return math.ceil(len(text) / 4)

    def estimate_cost(self, text: str) -> float:
        """Rough cost in USD for embedding *text*; zero when unknown."""
        return 0.0
