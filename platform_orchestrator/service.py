from __future__ import annotations

from collections import OrderedDict
from pathlib import Path
from typing import Iterable, Optional

from .builder import RepositoryBuilder
from .config import BuildConfigLoader
from .contexts import ContextManager
from .git import RepositoryProvider
from .models import Platform, RepositoryInfo
from .pipeline import PipelineExecutor
from .resolver import RepositoryResolver
from .utils import CancelToken, CommandRunner


class PlatformOrchestrator:
    """Entry point for the user-facing operations over all repositories."""

    def __init__(
        self,
        platform: Platform,
        provider: RepositoryProvider,
        contexts: ContextManager,
        builder: RepositoryBuilder,
        pipelines: PipelineExecutor,
        cancel: CancelToken,
    ) -> None:
        self.platform = platform
        self.provider = provider
        self.contexts = contexts
        self.builder = builder
        self.pipelines = pipelines
        self.cancel = cancel

    def repository_infos(self) -> "OrderedDict[str, RepositoryInfo]":
        # A fresh resolver per call, so results always reflect the current checkouts.
        return RepositoryResolver(self.platform, self.provider).resolve_all()

    def checkout(self, context_id: str) -> None:
        self.contexts.checkout(context_id)

    def build(self, push_images: bool = False) -> None:
        infos = self.repository_infos()
        self.builder.build_configs.clear()
        self.builder.build(self.platform.registry, infos)
        if push_images:
            self.builder.push(self.platform.registry, infos)

    def reset_context(self) -> None:
        self.contexts.reset()

    def merge_context(self, from_context_id: str) -> None:
        self.contexts.merge(from_context_id)

    def push_context(self, context_id: str, force: bool = False) -> None:
        self.contexts.push(context_id, force)

    def execute_pipelines(self, context_id: str, pipeline_ids: Iterable[str]) -> None:
        pipeline_ids = list(pipeline_ids)
        infos = self.repository_infos()
        for pipeline_id in pipeline_ids:
            self.cancel.raise_if_cancelled()
            self.pipelines.execute(context_id, pipeline_id, infos)


def create_orchestrator(
    platform: Platform,
    *,
    silent: bool = False,
    cancel: Optional[CancelToken] = None,
    runner: Optional[CommandRunner] = None,
    scratch_dir: str | Path = ".platform",
) -> PlatformOrchestrator:
    """Wire every component explicitly for one process."""

    cancel = cancel or (runner.cancel if runner is not None else CancelToken())
    runner = runner or CommandRunner(silent=silent, cancel=cancel)
    provider = RepositoryProvider(platform.repo_src, runner)
    return PlatformOrchestrator(
        platform=platform,
        provider=provider,
        contexts=ContextManager(platform, provider, cancel),
        builder=RepositoryBuilder(provider, BuildConfigLoader(), runner),
        pipelines=PipelineExecutor(platform.registry, platform.pipelines, provider, runner, scratch_dir),
        cancel=cancel,
    )
