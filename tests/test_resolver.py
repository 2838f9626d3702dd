from __future__ import annotations

import hashlib

import pytest

from platform_orchestrator.errors import GitOperationError
from platform_orchestrator.git import RepositoryProvider
from platform_orchestrator.resolver import RepositoryResolver

from .conftest import make_platform


def _resolver(runner, platform):
    return RepositoryResolver(platform, RepositoryProvider(platform.repo_src, runner))


def test_hash_combines_commit_and_dependency_hashes(runner, repo_src) -> None:
    platform = make_platform(repo_src, {"a": [], "b": ["a"]})
    runner.add_repo("a", commit="aaa")
    runner.add_repo("b", commit="bbb")

    infos = _resolver(runner, platform).resolve_all()

    expected_a = hashlib.sha256(b"aaa").digest()
    expected_b = hashlib.sha256(b"bbb" + expected_a).digest()
    assert infos["a"].hash == expected_a
    assert infos["b"].hash == expected_b
    assert infos["b"].hex_hash == expected_b.hex()
    assert list(infos) == ["a", "b"]


def test_hash_is_deterministic_across_resolvers(runner, repo_src) -> None:
    platform = make_platform(repo_src, {"a": [], "b": ["a"]})
    runner.add_repo("a")
    runner.add_repo("b")

    first = _resolver(runner, platform).resolve_all()
    second = _resolver(runner, platform).resolve_all()

    assert first["b"].hash == second["b"].hash


def test_dependency_commit_change_changes_dependent_hash(runner, repo_src) -> None:
    platform = make_platform(repo_src, {"a": [], "b": ["a"]})
    runner.add_repo("a", commit="a1")
    runner.add_repo("b", commit="b1")
    before = _resolver(runner, platform).resolve_all()

    runner.repos["a"]["commit"] = "a2"
    after = _resolver(runner, platform).resolve_all()

    assert after["b"].hash != before["b"].hash
    assert after["a"].hash != before["a"].hash


def test_dependency_order_is_part_of_the_hash(runner, repo_src) -> None:
    for name in ("x", "y", "z"):
        runner.add_repo(name)
    forward = make_platform(repo_src, {"x": [], "y": [], "z": ["x", "y"]})
    backward = make_platform(repo_src, {"x": [], "y": [], "z": ["y", "x"]})

    assert (
        _resolver(runner, forward).resolve_all()["z"].hash
        != _resolver(runner, backward).resolve_all()["z"].hash
    )


def test_branch_reported_when_closure_agrees(runner, repo_src) -> None:
    platform = make_platform(repo_src, {"a": [], "b": ["a"], "c": ["b"]})
    for name in ("a", "b", "c"):
        runner.add_repo(name, branch="develop")

    infos = _resolver(runner, platform).resolve_all()

    assert infos["c"].branch == "develop"


def test_branch_is_divergent_when_a_transitive_dependency_differs(runner, repo_src) -> None:
    platform = make_platform(repo_src, {"a": [], "b": ["a"], "c": ["b"], "d": []})
    runner.add_repo("a", branch="main")
    runner.add_repo("b", branch="develop")
    runner.add_repo("c", branch="develop")
    runner.add_repo("d", branch="develop")

    infos = _resolver(runner, platform).resolve_all()

    assert infos["a"].branch == "main"
    assert infos["b"].branch is None
    assert infos["c"].branch is None
    assert infos["d"].branch == "develop"


def test_detached_head_is_divergent(runner, repo_src) -> None:
    platform = make_platform(repo_src, {"a": []})
    runner.add_repo("a", branch="HEAD")

    assert _resolver(runner, platform).resolve_all()["a"].branch is None


def test_diamond_closure_queries_git_once_per_repository(runner, repo_src) -> None:
    platform = make_platform(
        repo_src,
        {"base": [], "left": ["base"], "right": ["base"], "app": ["left", "right"]},
    )
    for name in ("base", "left", "right", "app"):
        runner.add_repo(name)

    _resolver(runner, platform).resolve_all()

    base_calls = runner.git_calls("base")
    assert base_calls.count(["rev-parse", "HEAD"]) == 1
    assert base_calls.count(["rev-parse", "--abbrev-ref", "HEAD"]) == 1


def test_git_failure_anywhere_in_closure_aborts(runner, repo_src) -> None:
    platform = make_platform(repo_src, {"a": [], "b": ["a"]})
    runner.add_repo("a")
    runner.add_repo("b")
    runner.fail_on("git", "rev-parse", "HEAD", repo="a")

    with pytest.raises(GitOperationError) as excinfo:
        _resolver(runner, platform).resolve(platform.repository("b"))

    assert excinfo.value.repository_id == "a"
    assert excinfo.value.operation == "rev-parse"
