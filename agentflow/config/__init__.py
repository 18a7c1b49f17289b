from agentflow.config.llm import (
    AzureOpenAIChatConfig,
    AzureOpenAIEmbeddingConfig,
    ChatConfig,
    DeepSeekChatConfig,
    EmbeddingConfig,
    OpenAIChatConfig,
    OpenAIEmbeddingConfig,
)
from agentflow.config.settings import (
    AgentFlowConfig,
    ChunkingConfig,
    ChunkingStrategy,
    ExecutionConfig,
    HumanInLoopConfig,
    RagConfig,
    StorageConfig,
    ToolPermission,
    TracingConfig,
    VectorMemoryConfig,
    load_config,
)

__all__ = [
    "AgentFlowConfig",
    "ChatConfig",
    "EmbeddingConfig",
    "OpenAIChatConfig",
    "AzureOpenAIChatConfig",
    "DeepSeekChatConfig",
    "OpenAIEmbeddingConfig",
    "AzureOpenAIEmbeddingConfig",
    "ExecutionConfig",
    "HumanInLoopConfig",
    "ToolPermission",
    "VectorMemoryConfig",
    "ChunkingConfig",
    "ChunkingStrategy",
    "RagConfig",
    "StorageConfig",
    "TracingConfig",
    "load_config",
]
