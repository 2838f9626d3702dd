from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

from .config import BuildConfigLoader
from .errors import BuildError, CommandCancelledError, CommandError, ConfigurationError
from .git import RepositoryProvider
from .graph import dependency_order
from .logging import get_logger, timed
from .models import ImageSpec, RepositoryInfo
from .utils import CommandRunner


log = get_logger("platform_orchestrator.builder")


def build_arg_name(repository_id: str) -> str:
    return repository_id.replace("-", "_").upper()


def branch_tag(branch: str) -> str:
    # Image tags cannot contain slashes, which are common in branch names.
    return branch.replace("/", "-")


def image_reference(registry: str, image_name: str, tag: str) -> str:
    return f"{registry}/{image_name}:{tag}"


def image_tags(registry: str, image_name: str, info: RepositoryInfo) -> List[str]:
    """Hash tag always, branch tag only when the closure agrees on one branch."""

    tags = [image_reference(registry, image_name, info.hex_hash)]
    if info.branch is not None:
        tags.append(image_reference(registry, image_name, branch_tag(info.branch)))
    return tags


class RepositoryBuilder:
    """Builds sources and container images of every repository in dependency order."""

    def __init__(
        self,
        provider: RepositoryProvider,
        build_configs: BuildConfigLoader,
        runner: CommandRunner,
    ) -> None:
        self.provider = provider
        self.build_configs = build_configs
        self.runner = runner

    def build_order(self, infos: Mapping[str, RepositoryInfo]) -> List[RepositoryInfo]:
        ordered = dependency_order(info.repository for info in infos.values())
        return [infos[repository.id] for repository in ordered]

    def build(self, registry: str, infos: Mapping[str, RepositoryInfo]) -> None:
        for info in self.build_order(infos):
            self.runner.cancel.raise_if_cancelled()
            self._build_sources(info)
            self._build_images(registry, info, infos)

    def push(self, registry: str, infos: Mapping[str, RepositoryInfo]) -> None:
        for info in infos.values():
            self.runner.cancel.raise_if_cancelled()
            self._push_images(registry, info, infos)

    def build_args(self, registry: str, info: RepositoryInfo, infos: Mapping[str, RepositoryInfo]) -> Dict[str, str]:
        args = {"REGISTRY": registry}
        for dependency_id in info.depends_on:
            args[build_arg_name(dependency_id)] = infos[dependency_id].hex_hash
        args[build_arg_name(info.id)] = info.hex_hash
        return args

    def _tag_source(self, info: RepositoryInfo, image: ImageSpec, infos: Mapping[str, RepositoryInfo]) -> RepositoryInfo:
        if image.tag_by is None:
            return info
        try:
            return infos[image.tag_by]
        except KeyError as exc:
            raise ConfigurationError(
                f"image {image.name} of repository {info.id} is tagged by unknown repository {image.tag_by}"
            ) from exc

    def _run(self, info: RepositoryInfo, command: Sequence[str], message: str, image: str | None = None) -> None:
        try:
            result = self.runner.run(command, cwd=self.provider.repository_path(info.id))
        except CommandCancelledError:
            raise
        except CommandError as exc:
            raise BuildError(info.id, f"{message}: {exc}", image=image) from exc
        if result.output:
            log.debug(result.output)

    def _build_sources(self, info: RepositoryInfo) -> None:
        config = self.build_configs.load_for(self.provider.repository_path(info.id))
        if config.sources is None:
            log.info("no sources to build for \"%s\"", info.id)
            return
        with timed(log, "start build sources \"%s\"", info.id):
            self._run(
                info,
                [config.sources.executable, *config.sources.args],
                "failed to build sources",
            )

    def _build_images(self, registry: str, info: RepositoryInfo, infos: Mapping[str, RepositoryInfo]) -> None:
        config = self.build_configs.load_for(self.provider.repository_path(info.id))
        if not config.images:
            return
        build_args = self.build_args(registry, info, infos)
        with timed(log, "start build docker images for \"%s\"", info.id):
            for image in config.images:
                tags = image_tags(registry, image.name, self._tag_source(info, image, infos))
                command = [
                    "docker",
                    "build",
                    image.context,
                    f"--file={image.docker_file}",
                    *[f"--tag={tag}" for tag in tags],
                    *[f"--build-arg={key}={value}" for key, value in sorted(build_args.items())],
                ]
                self._run(info, command, "failed to build image", image=image.name)

    def _push_images(self, registry: str, info: RepositoryInfo, infos: Mapping[str, RepositoryInfo]) -> None:
        config = self.build_configs.load_for(self.provider.repository_path(info.id))
        if not config.images:
            return
        with timed(log, "start push docker images for \"%s\"", info.id):
            for image in config.images:
                if image.skip_push:
                    log.info("skip push %s/%s", registry, image.name)
                    continue
                for tag in image_tags(registry, image.name, self._tag_source(info, image, infos)):
                    log.info("push image %s", tag)
                    self._run(info, ["docker", "push", tag], "failed to push image", image=image.name)
