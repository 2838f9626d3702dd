from __future__ import annotations

from typing import Iterable, List, Optional, Sequence


class PlatformError(RuntimeError):
    """Base class for every failure surfaced by the orchestrator."""


class ConfigurationError(PlatformError):
    """Raised when the platform or build configuration is invalid."""


class CommandError(PlatformError):
    """Raised when a subprocess cannot start or exits with a non-zero status code."""

    def __init__(self, command: Sequence[str], returncode: int, output: str = "", message: str = "") -> None:
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        if not message:
            message = f"Command {' '.join(self.command)} failed with exit code {returncode}"
            if output.strip():
                message += f"\nOUTPUT:{output}"
        super().__init__(message)


class GitOperationError(PlatformError):
    """Raised when a git command fails for one repository."""

    def __init__(self, repository_id: str, operation: str, detail: str = "") -> None:
        self.repository_id = repository_id
        self.operation = operation
        message = f"git {operation} failed for repository {repository_id}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class BuildError(PlatformError):
    """Raised when building or pushing a repository or one of its images fails."""

    def __init__(self, repository_id: str, message: str, image: Optional[str] = None) -> None:
        self.repository_id = repository_id
        self.image = image
        target = repository_id if image is None else f"{repository_id} (image {image})"
        super().__init__(f"{message} for {target}")


class TemplateError(PlatformError):
    """Raised when a pipeline template cannot be found, parsed or rendered."""

    def __init__(self, pipeline_id: str, message: str) -> None:
        self.pipeline_id = pipeline_id
        super().__init__(f"{message} for {pipeline_id} pipeline")


class CombinedError(PlatformError):
    """Carries several underlying failures that happened while handling one operation."""

    def __init__(self, errors: Iterable[BaseException]) -> None:
        self.errors: List[BaseException] = [error for error in errors if error is not None]
        super().__init__("; ".join(str(error) for error in self.errors))


class CancelledError(PlatformError):
    """Raised when the operation was interrupted through its cancel token."""


class CommandCancelledError(CommandError, CancelledError):
    """Raised when a running command is terminated because of cancellation."""

    def __init__(self, command: Sequence[str], returncode: int = -1, output: str = "") -> None:
        super().__init__(
            command,
            returncode,
            output,
            message=f"Command {' '.join(command)} was cancelled",
        )
