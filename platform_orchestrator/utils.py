from __future__ import annotations

import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Mapping, Optional, Sequence

from .errors import CancelledError, CommandCancelledError, CommandError
from .logging import get_logger


POLL_INTERVAL_S = 0.1
TERMINATE_GRACE_S = 5.0

log = get_logger("platform_orchestrator.command")


class CancelToken:
    """Thread-safe cancellation flag shared by every layer of one orchestrator call."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancelledError("operation cancelled")


@dataclass
class CommandResult:
    command: List[str]
    returncode: int
    output: str


def _terminate(process: subprocess.Popen) -> None:
    process.terminate()
    try:
        process.wait(timeout=TERMINATE_GRACE_S)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()


def _forward_lines(pipe: IO[str]) -> None:
    for line in iter(pipe.readline, ""):
        log.info(line.rstrip("\n"))
    pipe.close()


def _wait_streaming(process: subprocess.Popen, command: List[str], cancel: Optional[CancelToken]) -> str:
    reader = threading.Thread(target=_forward_lines, args=(process.stdout,), daemon=True)
    reader.start()
    while True:
        try:
            process.wait(timeout=POLL_INTERVAL_S)
            break
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.cancelled:
                _terminate(process)
                reader.join(timeout=1.0)
                raise CommandCancelledError(command, process.returncode)
    reader.join()
    return ""


def _wait_captured(process: subprocess.Popen, command: List[str], cancel: Optional[CancelToken]) -> str:
    while True:
        try:
            output, _ = process.communicate(timeout=POLL_INTERVAL_S)
            return output or ""
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.cancelled:
                _terminate(process)
                output, _ = process.communicate()
                raise CommandCancelledError(command, process.returncode, output or "")


def run_command(
    command: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
    stream: bool = False,
    cancel: Optional[CancelToken] = None,
) -> CommandResult:
    """Execute a subprocess and return its combined stdout/stderr.

    With ``stream`` set, output lines are forwarded to the log as they arrive
    instead of being captured. A fired ``cancel`` token terminates the process.
    """

    command = [str(part) for part in command]
    if not command or not command[0]:
        raise CommandError(command, -1, message="command executable can not be empty")
    if cancel is not None and cancel.cancelled:
        raise CommandCancelledError(command)

    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    log.debug("%s (cwd=%s)", " ".join(command), cwd or ".")
    try:
        process = subprocess.Popen(
            command,
            cwd=str(cwd) if cwd else None,
            env=process_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as exc:
        raise CommandError(command, -1, message=f"Command {command[0]} could not be started: {exc}") from exc

    if stream:
        output = _wait_streaming(process, command, cancel)
    else:
        output = _wait_captured(process, command, cancel)

    if check and process.returncode != 0:
        raise CommandError(command, process.returncode, output)
    return CommandResult(command=command, returncode=process.returncode, output=output)


class CommandRunner:
    """Runs external commands with a shared silent mode and cancel token."""

    def __init__(self, *, silent: bool = False, cancel: Optional[CancelToken] = None) -> None:
        self.silent = silent
        self.cancel = cancel or CancelToken()

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: str | Path | None = None,
        stream: bool = False,
    ) -> CommandResult:
        return run_command(
            command,
            cwd=cwd,
            stream=stream and not self.silent,
            cancel=self.cancel,
        )


def env_flag(name: str, environ: Mapping[str, str] | None = None) -> bool:
    """Interpret a boolean-ish environment variable; unset or empty means False."""

    value = (environ if environ is not None else os.environ).get(name, "")
    return value.strip().lower() not in {"", "0", "false", "no", "off"}


def ensure_directory(path: str | Path) -> Path:
    """Create a directory and return its Path object."""

    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
