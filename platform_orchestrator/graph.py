from __future__ import annotations

from typing import Dict, Iterable, List

from .errors import ConfigurationError
from .models import Repository


def dependency_order(repositories: Iterable[Repository]) -> List[Repository]:
    """Order repositories so every dependency precedes its dependents.

    The walk follows the declared order and each ``depends_on`` list, so the
    result is stable for a given configuration. Unknown dependencies and
    cycles raise ConfigurationError.
    """

    repositories = list(repositories)
    by_id: Dict[str, Repository] = {repository.id: repository for repository in repositories}
    ordered: List[Repository] = []
    done: set[str] = set()
    visiting: List[str] = []

    def visit(repository: Repository) -> None:
        if repository.id in done:
            return
        if repository.id in visiting:
            cycle = visiting[visiting.index(repository.id):] + [repository.id]
            raise ConfigurationError(f"dependency cycle detected: {' -> '.join(cycle)}")
        visiting.append(repository.id)
        for dependency_id in repository.depends_on:
            if dependency_id not in by_id:
                raise ConfigurationError(
                    f"repository {repository.id} depends on unknown repository {dependency_id}"
                )
            visit(by_id[dependency_id])
        visiting.pop()
        done.add(repository.id)
        ordered.append(repository)

    for repository in repositories:
        visit(repository)
    return ordered
