import os
from enum import Enum

from pydantic import BaseModel, Field, TypeAdapter
from typing_extensions import Annotated, Literal


class ChatLLMType(str, Enum):
    AzureOpenAI = "azure_openai"
    OpenAI = "openai"
    DeepSeek = "deepseek"


class OpenAIChatConfig(BaseModel):
    type: Literal[ChatLLMType.OpenAI]
    endpoint: Annotated[str | None, Field(
        description="Base URL of an OpenAI-compatible endpoint; the public API when omitted",
        default=None,
    )]
    api_key: Annotated[str | None, Field(
        description="The API key for authentication",
        default_factory=lambda: os.environ.get("OPENAI_API_KEY"),
    )]
    timeout: Annotated[float, Field(
        description="Request timeout in seconds",
        default=180.0,
    )]
    model: Annotated[str, Field(
        description="Model used when an agent does not name one",
    )]
    max_tokens: Annotated[int | None, Field(
        description="Default completion token limit; agents and executors may override it",
        default=None,
    )]
    temperature: Annotated[float | None, Field(
        description="Default sampling temperature (0.0 to 2.0)",
        default=None,
    )]
    top_p: Annotated[float | None, Field(
        description="Default nucleus sampling mass (0.0 to 1.0)",
        default=None,
    )]

    def generation_params(self) -> dict:
        """Defaults for the generation parameters, without unset values."""
        params = {
            'max_tokens': self.max_tokens,
            'temperature': self.temperature,
            'top_p': self.top_p,
        }
        return {k: v for k, v in params.items() if v is not None}


class AzureOpenAIChatConfig(OpenAIChatConfig):
    type: Literal[ChatLLMType.AzureOpenAI]
    endpoint: Annotated[str, Field(
        description="The Azure OpenAI endpoint URL",
    )]
    deployment: Annotated[str, Field(
        description="The deployment name for the chat model",
    )]
    api_version: Annotated[str, Field(
        description="The Azure OpenAI API version to use",
    )]


class DeepSeekChatConfig(OpenAIChatConfig):
    type: Literal[ChatLLMType.DeepSeek]
    api_key: Annotated[str | None, Field(
        description="The API key for authentication",
        default_factory=lambda: os.environ.get("DEEPSEEK_API_KEY"),
    )]
    endpoint: Annotated[str, Field(
        description="The DeepSeek endpoint URL",
        default="https://api.deepseek.com",
    )]


ChatConfig = Annotated[AzureOpenAIChatConfig | OpenAIChatConfig | DeepSeekChatConfig, Field(
    description="Configuration for the chat completion provider",
    discriminator="type",
)]


def validate_chat_config(data: dict) -> ChatConfig:
    return TypeAdapter(ChatConfig).validate_python(data)


class EmbeddingLLMType(str, Enum):
    AzureOpenAI = "azure_openai"
    OpenAI = "openai"


class OpenAIEmbeddingConfig(BaseModel):
    type: Literal[EmbeddingLLMType.OpenAI]
    endpoint: Annotated[str | None, Field(
        description="Base URL of an OpenAI-compatible endpoint; the public API when omitted",
        default=None,
    )]
    api_key: Annotated[str | None, Field(
        description="The API key for authentication",
        default_factory=lambda: os.environ.get("OPENAI_API_KEY"),
    )]
    timeout: Annotated[float, Field(
        description="Request timeout in seconds",
        default=180.0,
    )]
    model: Annotated[str, Field(
        description="The embedding model identifier",
        default="text-embedding-3-small",
    )]
    dimensions: Annotated[int | None, Field(
        description="Requested vector size; the model's native size when omitted",
        default=None,
    )]


class AzureOpenAIEmbeddingConfig(OpenAIEmbeddingConfig):
    type: Literal[EmbeddingLLMType.AzureOpenAI]
    endpoint: Annotated[str, Field(
        description="The Azure OpenAI endpoint URL",
    )]
    deployment: Annotated[str, Field(
        description="The deployment name for the embedding model",
    )]
    api_version: Annotated[str, Field(
        description="The Azure OpenAI API version to use",
    )]


EmbeddingConfig = Annotated[OpenAIEmbeddingConfig | AzureOpenAIEmbeddingConfig, Field(
    description="Configuration for the embedding provider",
    discriminator="type",
)]


def validate_embedding_config(data: dict) -> EmbeddingConfig:
    return TypeAdapter(EmbeddingConfig).validate_python(data)
