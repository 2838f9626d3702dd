from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping

import jinja2

from .errors import TemplateError
from .git import RepositoryProvider
from .logging import get_logger, timed
from .models import RepositoryInfo
from .utils import CommandRunner, ensure_directory


log = get_logger("platform_orchestrator.pipeline")


class PipelineExecutor:
    """Renders pipeline templates with repository metadata and runs them with bash."""

    def __init__(
        self,
        registry: str,
        pipelines: Mapping[str, Path],
        provider: RepositoryProvider,
        runner: CommandRunner,
        scratch_dir: str | Path = ".platform",
    ) -> None:
        self.registry = registry
        self.pipelines = dict(pipelines)
        self.provider = provider
        self.runner = runner
        self.scratch_dir = Path(scratch_dir)

    def variables(
        self,
        context_id: str,
        pipeline_id: str,
        infos: Mapping[str, RepositoryInfo],
    ) -> Dict[str, Any]:
        return {
            "context_id": context_id,
            "pipeline_id": pipeline_id,
            "registry": self.registry,
            "repositories": {
                repository_id: {
                    "hash": info.hex_hash,
                    "images": list(info.repository.images),
                    "directory": str(self.provider.repository_path(repository_id)),
                }
                for repository_id, info in infos.items()
            },
        }

    def render(self, pipeline_id: str, variables: Mapping[str, Any]) -> str:
        try:
            template_path = self.pipelines[pipeline_id]
        except KeyError as exc:
            raise TemplateError(pipeline_id, "no template configured") from exc

        environment = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_path.parent)),
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
        )
        try:
            template = environment.get_template(template_path.name)
        except jinja2.TemplateNotFound as exc:
            raise TemplateError(pipeline_id, f"template {template_path} not found") from exc
        except jinja2.TemplateSyntaxError as exc:
            raise TemplateError(pipeline_id, f"failed to parse template ({exc.message}, line {exc.lineno})") from exc
        except UnicodeDecodeError as exc:
            raise TemplateError(pipeline_id, f"template {template_path} is not valid UTF-8 ({exc.reason})") from exc
        try:
            return template.render(**variables)
        except (jinja2.TemplateError, TypeError, ValueError, ArithmeticError, LookupError) as exc:
            raise TemplateError(pipeline_id, f"failed to render template ({exc})") from exc

    def execute(self, context_id: str, pipeline_id: str, infos: Mapping[str, RepositoryInfo]) -> None:
        script = self.render(pipeline_id, self.variables(context_id, pipeline_id, infos))
        ensure_directory(self.scratch_dir)
        fd, script_path = tempfile.mkstemp(prefix=f"{pipeline_id}-", suffix=".sh", dir=self.scratch_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(script)
            with timed(log, "execute pipeline \"%s\" for context \"%s\"", pipeline_id, context_id):
                self.runner.run(["bash", script_path], stream=True)
        finally:
            os.remove(script_path)
