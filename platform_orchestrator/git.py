from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

from .errors import CommandCancelledError, CommandError, GitOperationError
from .models import Repository
from .utils import CommandResult, CommandRunner


DETACHED_HEAD = "HEAD"


class RepositoryProvider:
    """Git operations on the local checkouts below ``repo_src``."""

    def __init__(self, repo_src: str | Path, runner: CommandRunner) -> None:
        self.repo_src = Path(repo_src)
        self.runner = runner

    def repository_path(self, repository_id: str) -> Path:
        return self.repo_src / repository_id

    def _git(self, repository_id: str, operation: str, args: Sequence[str], *, cwd: Path | None = None) -> CommandResult:
        command: List[str] = ["git", *args]
        try:
            return self.runner.run(command, cwd=cwd or self.repository_path(repository_id))
        except CommandCancelledError:
            raise
        except CommandError as exc:
            raise GitOperationError(repository_id, operation, str(exc)) from exc

    def exists(self, repository: Repository) -> bool:
        return self.repository_path(repository.id).exists()

    def clone(self, repository: Repository) -> None:
        target = self.repository_path(repository.id)
        target.parent.mkdir(parents=True, exist_ok=True)
        self._git(repository.id, "clone", ["clone", repository.git_src, str(target)], cwd=target.parent)

    def fetch(self, repository: Repository) -> None:
        self._git(repository.id, "fetch", ["fetch"])

    def checkout(self, repository: Repository, branch: str) -> None:
        if not branch:
            raise GitOperationError(repository.id, "checkout", "target branch is empty")
        if self.branch_name(repository.id) == branch:
            return
        if self._has_local_branch(repository.id, branch):
            self._git(repository.id, "checkout", ["checkout", branch])
        else:
            self._git(repository.id, "checkout", ["checkout", "-b", branch, f"origin/{branch}"])

    def _has_local_branch(self, repository_id: str, branch: str) -> bool:
        result = self._git(repository_id, "branch", ["branch", "--list", branch])
        return bool(result.output.strip())

    def commit_hash(self, repository_id: str) -> str:
        return self._git(repository_id, "rev-parse", ["rev-parse", "HEAD"]).output.strip()

    def branch_name(self, repository_id: str) -> str:
        return self._git(repository_id, "rev-parse", ["rev-parse", "--abbrev-ref", "HEAD"]).output.strip()

    def reset(self, repository_id: str) -> None:
        self._git(repository_id, "reset", ["reset", "--hard"])
        self._git(repository_id, "clean", ["clean", "-dxf"])

    def merge(self, repository_id: str, branch: str) -> None:
        self._git(repository_id, "merge", ["merge", f"origin/{branch}"])

    def push(self, repository_id: str, dry_run: bool) -> str:
        args = ["push"]
        if dry_run:
            args.append("--dry-run")
        return self._git(repository_id, "push", args).output
