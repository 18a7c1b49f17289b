import logging
from contextlib import asynccontextmanager
from contextvars import Token
from typing import Any, AsyncIterator, Optional

from agentflow.tracer.callback import TracerCallbackHandler
from agentflow.tracer.context import (
    get_current_span,
    reset_active_tracer,
    reset_current_span,
    set_active_tracer,
    set_current_span,
)
from agentflow.tracer.exporter import YAMLExporter
from agentflow.tracer.span import Span, SpanKind

logger = logging.getLogger(__name__)


class Tracer:
    """Hierarchical span-based tracer.

    Parameters
    ----------
    exporter:
        An exporter used to persist each finished root span when
        :pymethod:`export` is called.  May be ``None`` (trace data is kept
        only in memory, see :pyattr:`roots`).
    """

    def __init__(self, exporter: YAMLExporter | None = None) -> None:
        self._exporter = exporter
        self._callback_handler = TracerCallbackHandler()
        self._roots: list[Span] = []

    # ------------------------------------------------------------------
    # Activation / deactivation
    # ------------------------------------------------------------------

    def activate(self) -> Token:
        """Push this tracer into the ``ContextVar`` so decorators find it."""
        return set_active_tracer(self)

    def deactivate(self, token: Token) -> None:
        reset_active_tracer(token)

    # ------------------------------------------------------------------
    # Span lifecycle
    # ------------------------------------------------------------------

    def start_span(
        self,
        kind: SpanKind,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> tuple[Span, Token]:
        """Create a new span and make it the *current* span.

        The new span is added as a child of the currently active span, or
        recorded as a new root when there is none.

        Returns ``(span, context_token)``; the token must be passed to
        :pymethod:`end_span` to restore the previous span.
        """
        span = Span(kind=kind, name=name)
        if attributes:
            span.attributes.update(attributes)

        parent = get_current_span()
        if parent is not None:
            parent.add_child(span)
        else:
            self._roots.append(span)

        token = set_current_span(span)
        return span, token

    def end_span(self, span: Span, token: Token, error: Exception | None = None) -> None:
        span.finish(error=error)
        reset_current_span(token)

    @asynccontextmanager
    async def span(
        self,
        kind: SpanKind,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AsyncIterator[Span]:
        """Wrap a block in a span of the given kind.

        Usage::

            async with tracer.span(SpanKind.LLM_CALL, "planner"):
                response = await provider.complete(request)
        """
        span, token = self.start_span(kind, name, attributes)
        try:
            yield span
        except Exception as exc:
            span.status = "error"
            span.error = str(exc)
            raise
        finally:
            self.end_span(span, token)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(self, root: Span | None = None) -> None:
        """Persist *root* (default: the latest root span) via the exporter."""
        if self._exporter is None:
            logger.debug("No exporter configured, skipping trace export.")
            return
        root = root or (self._roots[-1] if self._roots else None)
        if root is None:
            logger.warning("No root span recorded, nothing to export.")
            return
        self._exporter.export(root, filename=f"trace_{root.kind.value}_{root.span_id}.yaml")

    @property
    def callback_handler(self) -> TracerCallbackHandler:
        """The LangChain callback handler managed by this tracer."""
        return self._callback_handler

    @property
    def roots(self) -> list[Span]:
        return list(self._roots)

    @property
    def last_root(self) -> Optional[Span]:
        return self._roots[-1] if self._roots else None
