import logging

import openai
from azure.identity import DefaultAzureCredential, get_bearer_token_provider
from openai import AsyncAzureOpenAI, AsyncOpenAI

from agentflow.config.llm import AzureOpenAIEmbeddingConfig, OpenAIEmbeddingConfig
from agentflow.exceptions import EmbeddingError
from agentflow.llm.types import AsyncOpenAIClient
from agentflow.memory.embedding import EmbeddingProvider

logger = logging.getLogger(__name__)

MODEL_DIMENSIONS = {
    'text-embedding-3-small': 1536,
    'text-embedding-3-large': 3072,
    'text-embedding-ada-002': 1536,
}

# USD per 1K tokens
MODEL_PRICES = {
    'text-embedding-3-small': 0.00002,
    'text-embedding-3-large': 0.00013,
    'text-embedding-ada-002': 0.0001,
}


class OpenAIEmbeddingProvider(EmbeddingProvider):
    provider_name = 'openai'
    max_input_length = 30000

    def __init__(self, client: AsyncOpenAIClient, model: str, dimensions: int | None = None):
        self.client = client
        self._model = model
        self._dimensions = dimensions

    @classmethod
    def from_config(cls, config: AzureOpenAIEmbeddingConfig | OpenAIEmbeddingConfig) -> 'OpenAIEmbeddingProvider':
        if isinstance(config, AzureOpenAIEmbeddingConfig):
            if config.api_key:
                credential = {"api_key": config.api_key}
            else:
                credential = {
                    "azure_ad_token_provider": get_bearer_token_provider(
                        DefaultAzureCredential(),
                        "https://cognitiveservices.azure.com/.default"
                    )
                }
            client = AsyncAzureOpenAI(
                azure_endpoint=config.endpoint,
                azure_deployment=config.deployment,
                api_version=config.api_version,
                timeout=config.timeout,
                **credential,
            )
        else:
            client = AsyncOpenAI(
                base_url=config.endpoint,
                api_key=config.api_key,
                timeout=config.timeout,
            )
        return cls(client, config.model, config.dimensions)

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions or MODEL_DIMENSIONS.get(self._model, 1536)

    async def embed(self, texts: str | list[str]) -> list[list[float]]:
        items = self.check_inputs(texts)
        params = {}
        if self._dimensions is not None:
            params['dimensions'] = self._dimensions
        try:
            response = await self.client.embeddings.create(
                input=items,
                model=self._model,
                encoding_format="float",
                **params,
            )
        except openai.OpenAIError as e:
            raise EmbeddingError(self.provider_name, e) from e
        logger.debug("Embedded %d text(s) with %s", len(items), self._model)
        return [d.embedding for d in response.data]

    def estimate_cost(self, text: str) -> float:
        price = MODEL_PRICES.get(self._model, MODEL_PRICES['text-embedding-3-small'])
        return (len(text) / 4) / 1000 * price
