from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from platform_orchestrator.config import parse_platform
from platform_orchestrator.errors import CommandError
from platform_orchestrator.models import Platform
from platform_orchestrator.utils import CancelToken, CommandResult


@dataclass
class Call:
    command: List[str]
    cwd: Optional[Path]
    stream: bool


class FakeRunner:
    """Records commands and simulates just enough git to drive the orchestrator."""

    def __init__(self, repo_src: Path) -> None:
        self.repo_src = Path(repo_src)
        self.cancel = CancelToken()
        self.silent = False
        self.calls: List[Call] = []
        self.repos: Dict[str, Dict[str, Any]] = {}
        self.failures: List[Tuple[Tuple[str, ...], Optional[str]]] = []

    def add_repo(
        self,
        repo_id: str,
        *,
        branch: str = "main",
        commit: Optional[str] = None,
        cloned: bool = True,
        dirty: bool = False,
    ) -> None:
        if cloned:
            (self.repo_src / repo_id).mkdir(parents=True, exist_ok=True)
        self.repos[repo_id] = {
            "branch": branch,
            "commit": commit or f"{repo_id}-commit",
            "local": {branch},
            "dirty": dirty,
            "merged": [],
        }

    def fail_on(self, *prefix: str, repo: Optional[str] = None) -> None:
        self.failures.append((tuple(prefix), repo))

    def commands(self, executable: Optional[str] = None) -> List[List[str]]:
        return [call.command for call in self.calls if executable is None or call.command[0] == executable]

    def git_calls(self, repo_id: str) -> List[List[str]]:
        return [
            call.command[1:]
            for call in self.calls
            if call.command[0] == "git" and call.cwd is not None and call.cwd.name == repo_id
        ]

    def run(self, command, *, cwd=None, stream=False) -> CommandResult:
        command = [str(part) for part in command]
        cwd = Path(cwd) if cwd is not None else None
        self.calls.append(Call(command, cwd, stream))
        repo_id = cwd.name if cwd is not None else None
        for prefix, repo in self.failures:
            if tuple(command[: len(prefix)]) == prefix and repo in (None, repo_id):
                raise CommandError(command, 1, "boom")
        if command[0] == "git":
            return CommandResult(command, 0, self._git(command[1:], cwd))
        return CommandResult(command, 0, "")

    def _git(self, args: List[str], cwd: Optional[Path]) -> str:
        operation = args[0]
        if operation == "clone":
            target = Path(args[2])
            target.mkdir(parents=True)
            if target.name not in self.repos:
                self.add_repo(target.name, cloned=False)
            return ""
        state = self.repos[cwd.name]
        if operation == "rev-parse":
            return (state["branch"] if "--abbrev-ref" in args else state["commit"]) + "\n"
        if operation == "branch":
            return f"  {args[2]}\n" if args[2] in state["local"] else ""
        if operation == "checkout":
            branch = args[2] if args[1] == "-b" else args[1]
            state["local"].add(branch)
            state["branch"] = branch
            return ""
        if operation in ("reset", "clean"):
            state["dirty"] = False
            return ""
        if operation == "merge":
            state["merged"].append(args[1])
            return ""
        if operation == "push":
            return "To origin\n   abc..def  HEAD -> HEAD\n"
        return ""


@pytest.fixture
def repo_src(tmp_path: Path) -> Path:
    path = tmp_path / "repos"
    path.mkdir()
    return path


@pytest.fixture
def runner(repo_src: Path) -> FakeRunner:
    return FakeRunner(repo_src)


def make_platform(
    repo_src: Path,
    repositories: Dict[str, List[str]],
    contexts: Optional[Dict[str, Dict[str, Any]]] = None,
    pipelines: Optional[Dict[str, str]] = None,
    registry: str = "registry.local",
) -> Platform:
    raw = {
        "repoSrc": str(repo_src),
        "registry": registry,
        "repositories": {
            repository_id: {
                "gitSrc": f"git@example.com:{repository_id}.git",
                "dependsOn": depends_on,
                "images": [f"{repository_id}-image"],
            }
            for repository_id, depends_on in repositories.items()
        },
        "contexts": contexts or {},
        "pipelines": pipelines or {},
    }
    return parse_platform(raw, repo_src.parent)


def write_build_config(repo_dir: Path, config: Dict[str, Any]) -> Path:
    repo_dir.mkdir(parents=True, exist_ok=True)
    path = repo_dir / "platform-build.json"
    path.write_text(json.dumps(config))
    return path
