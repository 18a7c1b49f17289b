import logging
from typing import Any

from agentflow.llm.types import CompletionProvider, CompletionRequest
from agentflow.template import TemplateEnvironment
from agentflow.tracer import trace_llm

logger = logging.getLogger(__name__)


class LLMMixin:
    """Mixin that renders a prompt template and sends it to the provider"""

    def __init__(self, template_env: TemplateEnvironment, provider: CompletionProvider):
        self.template_env = template_env
        self.provider = provider

    @trace_llm(name_attr='name')
    async def call_template(
            self,
            template_name: str,
            user_question: str | None = None,
            json_format: bool = False,
            generation_params: dict[str, Any] | None = None,
            **kwargs: Any,
    ) -> str:
        logger.info(f"Calling template: {template_name} with json_format={json_format}")
        prompt = self.template_env.load_template(template_name).render(**kwargs)
        logger.debug('\n' + prompt)

        request = CompletionRequest(
            messages=[
                {'role': 'system', 'content': prompt},
                {'role': 'user', 'content': user_question or 'Please answer the question.'},
            ],
            json_format=json_format,
            **(generation_params or {}),
        )
        response = await self.provider.complete(request)
        content = response.content or ''

        logger.info(f"Received response from LLM for template {template_name}")
        logger.debug('\n' + content)
        return content
