from __future__ import annotations

import hashlib
from collections import OrderedDict
from typing import Dict, Optional

from .git import DETACHED_HEAD, RepositoryProvider
from .models import Platform, Repository, RepositoryInfo


class RepositoryResolver:
    """Computes content hashes and closure branches over the dependency graph.

    A resolver memoizes every git query and intermediate result, so it must be
    created fresh for each orchestrator call to reflect the on-disk state.
    """

    def __init__(self, platform: Platform, provider: RepositoryProvider) -> None:
        self.platform = platform
        self.provider = provider
        self._commits: Dict[str, str] = {}
        self._branch_names: Dict[str, str] = {}
        self._hashes: Dict[str, bytes] = {}
        self._branches: Dict[str, Optional[str]] = {}

    def _commit(self, repository_id: str) -> str:
        if repository_id not in self._commits:
            self._commits[repository_id] = self.provider.commit_hash(repository_id)
        return self._commits[repository_id]

    def _branch_name(self, repository_id: str) -> str:
        if repository_id not in self._branch_names:
            self._branch_names[repository_id] = self.provider.branch_name(repository_id)
        return self._branch_names[repository_id]

    def compute_hash(self, repository: Repository) -> bytes:
        """sha256 of the commit id followed by each dependency hash in ``depends_on`` order."""

        cached = self._hashes.get(repository.id)
        if cached is not None:
            return cached
        digest = hashlib.sha256()
        digest.update(self._commit(repository.id).encode("utf-8"))
        for dependency_id in repository.depends_on:
            digest.update(self.compute_hash(self.platform.repository(dependency_id)))
        result = digest.digest()
        self._hashes[repository.id] = result
        return result

    def compute_branch(self, repository: Repository) -> Optional[str]:
        """Branch shared by the whole dependency closure, or None when it diverges."""

        if repository.id in self._branches:
            return self._branches[repository.id]
        branch: Optional[str] = self._branch_name(repository.id)
        if branch == DETACHED_HEAD:
            branch = None
        # Every dependency is still queried so a broken checkout anywhere in the closure fails.
        for dependency_id in repository.depends_on:
            if self.compute_branch(self.platform.repository(dependency_id)) != branch:
                branch = None
        self._branches[repository.id] = branch
        return branch

    def resolve(self, repository: Repository) -> RepositoryInfo:
        return RepositoryInfo(
            repository=repository,
            hash=self.compute_hash(repository),
            branch=self.compute_branch(repository),
        )

    def resolve_all(self) -> "OrderedDict[str, RepositoryInfo]":
        infos: "OrderedDict[str, RepositoryInfo]" = OrderedDict()
        for repository in self.platform.repositories:
            infos[repository.id] = self.resolve(repository)
        return infos
