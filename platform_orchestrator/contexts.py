from __future__ import annotations

from .errors import CancelledError, CombinedError, ConfigurationError, PlatformError
from .git import RepositoryProvider
from .logging import get_logger, timed
from .models import Platform, Repository
from .utils import CancelToken


log = get_logger("platform_orchestrator.contexts")


class ContextManager:
    """Moves every repository's working tree between named contexts.

    Repositories are processed in declared order and the first hard error
    aborts the whole operation. Nothing is persisted: the git working trees
    are the only state.
    """

    def __init__(self, platform: Platform, provider: RepositoryProvider, cancel: CancelToken) -> None:
        self.platform = platform
        self.provider = provider
        self.cancel = cancel

    def checkout(self, context_id: str) -> None:
        context = self.platform.context(context_id)
        missing = [r.id for r in self.platform.repositories if not context.branches.get(r.id)]
        if missing:
            raise ConfigurationError(
                f"context {context_id} has no branch for repositories: {', '.join(missing)}"
            )
        for repository in self.platform.repositories:
            self.cancel.raise_if_cancelled()
            self._checkout(repository, context.branches[repository.id])
        self.reset()

    def _checkout(self, repository: Repository, branch: str) -> None:
        with timed(log, "checkout \"%s\" to branch \"%s\"...", repository.id, branch):
            if not self.provider.exists(repository):
                self.provider.clone(repository)
            self.provider.fetch(repository)
            self.provider.checkout(repository, branch)

    def reset(self) -> None:
        for repository in self.platform.repositories:
            self.cancel.raise_if_cancelled()
            self.provider.reset(repository.id)

    def merge(self, from_context_id: str) -> None:
        source = self.platform.context(from_context_id)
        for repository in self.platform.repositories:
            self.cancel.raise_if_cancelled()
            current_branch = self.provider.branch_name(repository.id)
            branch = source.branches.get(repository.id)
            if not branch or branch == current_branch:
                log.info("skip merge branch from repository \"%s\"", repository.id)
                continue
            log.info(
                "merge branch \"%s\" to \"%s\" from repository \"%s\"",
                branch,
                current_branch,
                repository.id,
            )
            self._merge(repository, branch)

    def _merge(self, repository: Repository, branch: str) -> None:
        try:
            self.provider.merge(repository.id, branch)
        except CancelledError:
            raise
        except PlatformError as merge_error:
            log.error("failed merge repository \"%s\": %s", repository.id, merge_error)
            reset_error = None
            try:
                self.provider.reset(repository.id)
            except PlatformError as exc:
                reset_error = exc
            if reset_error is None:
                raise
            raise CombinedError([merge_error, reset_error]) from merge_error

    def push(self, context_id: str, force: bool) -> None:
        context = self.platform.context(context_id)
        base = self.platform.base_context(context)
        for repository in self.platform.repositories:
            self.cancel.raise_if_cancelled()
            base_branch = base.branches.get(repository.id, "") if base is not None else ""
            branch = context.branches.get(repository.id)
            if not branch or branch == base_branch:
                log.info("skip push repository \"%s\"", repository.id)
                continue
            log.info("push repository \"%s\" (dry-run = %s)", repository.id, not force)
            output = self.provider.push(repository.id, dry_run=not force)
            if output.strip():
                log.info(output.strip())
