from typing import Any

from agentflow.context import AgentContext
from agentflow.exceptions import ToolExecutionError
from agentflow.memory.vector import VectorMemoryManager
from agentflow.tools.base import BaseTool


class VectorMemoryTool(BaseTool):
    """Semantic store/search over the agent's vector memory."""

    def __init__(self, manager: VectorMemoryManager, agent_name: str):
        self.manager = manager
        self.agent_name = agent_name

    def definition(self) -> dict[str, Any]:
        return {
            'name': 'vector_memory',
            'description': (
                "Store documents in semantic memory, search it by meaning, "
                "or build a context block for answering a question."
            ),
            'parameters': {
                'type': 'object',
                'properties': {
                    'action': {'type': 'string', 'enum': ['store', 'search', 'get_context']},
                    'content': {'type': 'string', 'description': 'Text to store'},
                    'query': {'type': 'string', 'description': 'Search query'},
                    'namespace': {'type': 'string', 'default': 'default'},
                    'source': {'type': 'string'},
                    'source_id': {'type': 'string', 'description': 'Identifier of the stored document'},
                    'limit': {'type': 'integer', 'default': 5},
                    'threshold': {'type': 'number', 'default': 0.7},
                },
                'required': ['action'],
            },
        }

    async def execute(self, arguments: dict[str, Any], context: AgentContext) -> str:
        self.validate_arguments(arguments)
        action = arguments['action']
        namespace = arguments.get('namespace') or 'default'

        if action == 'store':
            if not arguments.get('content'):
                raise ToolExecutionError(self.name, "'content' is required for store")
            entries = await self.manager.add_document(
                self.agent_name,
                arguments['content'],
                namespace=namespace,
                source=arguments.get('source'),
                source_id=arguments.get('source_id'),
            )
            return self.result({'success': True, 'chunks_stored': len(entries), 'ids': [e.id for e in entries]})

        if not arguments.get('query'):
            raise ToolExecutionError(self.name, f"'query' is required for {action}")
        limit = int(arguments.get('limit') or 5)
        threshold = float(arguments.get('threshold') or 0.7)

        if action == 'search':
            results = await self.manager.search(
                self.agent_name, arguments['query'], namespace=namespace, limit=limit, threshold=threshold,
            )
            return self.result({
                'success': True,
                'results': [
                    {'content': r.entry.content, 'similarity': round(r.similarity, 4), 'source': r.entry.source}
                    for r in results
                ],
            })
        if action == 'get_context':
            rag = await self.manager.generate_rag_context(
                self.agent_name, arguments['query'], namespace=namespace, limit=limit, threshold=threshold,
            )
            return self.result({'success': True, **rag})
        raise ToolExecutionError(self.name, f"Unknown action '{action}'")
