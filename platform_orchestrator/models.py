from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigurationError


def _object(data: Any, owner: str) -> Dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{owner} must be an object")
    return data


def _string_list(data: Dict[str, Any], key: str, owner: str) -> List[str]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigurationError(f"{key} of {owner} must be a list of strings")
    return list(value)


@dataclass(frozen=True)
class Repository:
    """A git repository taking part in the platform."""

    id: str
    git_src: str
    depends_on: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, repository_id: str, data: Any) -> "Repository":
        owner = f"repository {repository_id}"
        data = _object(data, owner)
        return cls(
            id=repository_id,
            git_src=data.get("gitSrc", ""),
            depends_on=_string_list(data, "dependsOn", owner),
            images=_string_list(data, "images", owner),
        )


@dataclass
class Context:
    """Named set of target branches, optionally inheriting from a base context."""

    id: str
    branches: Dict[str, str] = field(default_factory=dict)
    base_context_id: Optional[str] = None

    @classmethod
    def from_dict(cls, context_id: str, data: Dict[str, Any]) -> "Context":
        return cls(
            id=context_id,
            branches=dict(data.get("branches", {})),
            base_context_id=data.get("baseContext") or None,
        )


@dataclass
class Platform:
    repo_src: Path
    registry: str
    contexts: Dict[str, Context] = field(default_factory=dict)
    repositories: List[Repository] = field(default_factory=list)
    pipelines: Dict[str, Path] = field(default_factory=dict)

    def repository(self, repository_id: str) -> Repository:
        for repository in self.repositories:
            if repository.id == repository_id:
                return repository
        raise ConfigurationError(f"repository with id {repository_id} not found")

    def context(self, context_id: str) -> Context:
        try:
            return self.contexts[context_id]
        except KeyError as exc:
            raise ConfigurationError(f"context with id {context_id} not found") from exc

    def base_context(self, context: Context) -> Optional[Context]:
        if context.base_context_id is None:
            return None
        return self.context(context.base_context_id)


@dataclass(frozen=True)
class RepositoryInfo:
    """Repository state computed for a single orchestrator run."""

    repository: Repository
    hash: bytes
    branch: Optional[str]

    @property
    def id(self) -> str:
        return self.repository.id

    @property
    def depends_on(self) -> List[str]:
        return self.repository.depends_on

    @property
    def hex_hash(self) -> str:
        return self.hash.hex()


@dataclass
class BuildCommand:
    executable: str
    args: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildCommand":
        return cls(
            executable=data.get("executable", ""),
            args=[str(arg) for arg in data.get("args", [])],
        )


@dataclass
class ImageSpec:
    name: str
    context: str = "."
    docker_file: str = "Dockerfile"
    tag_by: Optional[str] = None
    skip_push: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> "ImageSpec":
        data = _object(data, "image entry")
        if not data.get("name"):
            raise ConfigurationError("image entry requires a name")
        return cls(
            name=data["name"],
            context=data.get("context", "."),
            docker_file=data.get("dockerFile", "Dockerfile"),
            tag_by=data.get("tagBy") or None,
            skip_push=bool(data.get("skipPush", False)),
        )


@dataclass
class BuildConfig:
    """Per-repository build description read from ``platform-build.json``."""

    sources: Optional[BuildCommand] = None
    images: List[ImageSpec] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildConfig":
        build = _object(data.get("build"), "build block")
        sources = _object(build.get("sources"), "sources block")
        images = build.get("images") or []
        if not isinstance(images, list):
            raise ConfigurationError("images of build block must be a list")
        return cls(
            sources=BuildCommand.from_dict(sources) if sources else None,
            images=[ImageSpec.from_dict(entry) for entry in images],
        )
