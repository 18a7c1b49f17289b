"""YAML exporter for execution traces."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable

import yaml

from agentflow.tracer.span import Span

logger = logging.getLogger(__name__)


class YAMLExporter:
    """Writes finished span trees to YAML files under *output_dir*.

    One file per root span; a workflow run therefore produces a single file
    holding every agent run, tool call and delegation nested inside it.
    """

    def __init__(self, output_dir: Path | str) -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def export(self, root_span: Span, filename: str | None = None) -> Path:
        if filename is None:
            ts = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"trace_{ts}_{root_span.span_id}.yaml"

        path = self.output_dir / filename
        with open(path, "w", encoding="utf-8") as fh:
            yaml.safe_dump(
                root_span.to_dict(),
                fh,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )

        logger.info("Trace for %s '%s' exported to %s", root_span.kind.value, root_span.name, path)
        return path

    def export_all(self, roots: Iterable[Span]) -> list[Path]:
        return [self.export(root) for root in roots]
