from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import yaml

from .errors import ConfigurationError
from .graph import dependency_order
from .logging import get_logger
from .models import BuildConfig, Context, Platform, Repository


BUILD_CONFIG_NAME = "platform-build.json"

log = get_logger("platform_orchestrator.config")


def _read_document(path: Path) -> Dict[str, Any]:
    try:
        raw_text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"failed to read {path}: {exc}") from exc
    try:
        raw_data = json.loads(raw_text)
    except json.JSONDecodeError:
        try:
            raw_data = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"failed to parse {path}: {exc}") from exc
    if not isinstance(raw_data, dict):
        raise ConfigurationError(f"{path} must contain a top-level object")
    return raw_data


def _resolve(base_dir: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base_dir / path


def _merge_base_branches(contexts: Dict[str, Context]) -> None:
    # One level only: a base context's own base is not followed.
    declared = {context_id: dict(context.branches) for context_id, context in contexts.items()}
    for context in contexts.values():
        if context.base_context_id is None:
            continue
        if context.base_context_id not in declared:
            raise ConfigurationError(
                f"base context {context.base_context_id} for context {context.id} not found"
            )
        for repository_id, branch in declared[context.base_context_id].items():
            context.branches.setdefault(repository_id, branch)


def parse_platform(raw_data: Dict[str, Any], base_dir: Path) -> Platform:
    repositories = [
        Repository.from_dict(repository_id, entry)
        for repository_id, entry in (raw_data.get("repositories") or {}).items()
    ]
    known = {repository.id for repository in repositories}

    contexts = {
        context_id: Context.from_dict(context_id, entry or {})
        for context_id, entry in (raw_data.get("contexts") or {}).items()
    }
    for context in contexts.values():
        for repository_id in context.branches:
            if repository_id not in known:
                raise ConfigurationError(
                    f"context {context.id} references unexpected repository {repository_id}"
                )
    _merge_base_branches(contexts)
    dependency_order(repositories)

    pipelines = {
        pipeline_id: _resolve(base_dir, template)
        for pipeline_id, template in (raw_data.get("pipelines") or {}).items()
    }

    return Platform(
        repo_src=_resolve(base_dir, raw_data.get("repoSrc") or "."),
        registry=raw_data.get("registry", ""),
        contexts=contexts,
        repositories=repositories,
        pipelines=pipelines,
    )


def load_platform(path: str | Path) -> Platform:
    """Load and validate the platform description (JSON, or YAML as a fallback)."""

    path = Path(path)
    platform = parse_platform(_read_document(path), path.resolve().parent)
    log.debug(
        "loaded %d repositories and %d contexts from %s",
        len(platform.repositories),
        len(platform.contexts),
        path,
    )
    return platform


class BuildConfigLoader:
    """Loads ``platform-build.json`` files once per path for the lifetime of the loader."""

    def __init__(self) -> None:
        self._cache: Dict[Path, BuildConfig] = {}

    def load(self, path: str | Path) -> BuildConfig:
        path = Path(path)
        cached = self._cache.get(path)
        if cached is not None:
            return cached
        config = BuildConfig.from_dict(_read_document(path))
        self._cache[path] = config
        return config

    def load_for(self, repository_path: str | Path) -> BuildConfig:
        return self.load(Path(repository_path) / BUILD_CONFIG_NAME)

    def __len__(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()
