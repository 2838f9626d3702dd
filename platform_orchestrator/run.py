from __future__ import annotations

import argparse
import signal
import sys
from typing import Callable, List

from .config import load_platform
from .errors import PlatformError
from .logging import get_logger
from .service import PlatformOrchestrator, create_orchestrator
from .utils import CancelToken, env_flag


log = get_logger("platform_orchestrator.run")

Handler = Callable[[PlatformOrchestrator, argparse.Namespace], None]


def _split_pipelines(values: List[str]) -> List[str]:
    pipelines: List[str] = []
    for value in values:
        pipelines.extend(item.strip() for item in value.split(",") if item.strip())
    return pipelines


def cmd_checkout(orchestrator: PlatformOrchestrator, args: argparse.Namespace) -> None:
    orchestrator.checkout(args.context)


def cmd_build(orchestrator: PlatformOrchestrator, args: argparse.Namespace) -> None:
    if not args.no_checkout:
        orchestrator.checkout(args.context)
    orchestrator.build(push_images=args.push_images)


def cmd_reset_context(orchestrator: PlatformOrchestrator, args: argparse.Namespace) -> None:
    orchestrator.reset_context()


def cmd_merge_context(orchestrator: PlatformOrchestrator, args: argparse.Namespace) -> None:
    if not args.no_checkout:
        orchestrator.checkout(args.context)
    orchestrator.merge_context(args.from_context)


def cmd_push_context(orchestrator: PlatformOrchestrator, args: argparse.Namespace) -> None:
    orchestrator.push_context(args.context, force=args.force)


def cmd_execute(orchestrator: PlatformOrchestrator, args: argparse.Namespace) -> None:
    orchestrator.execute_pipelines(args.context, _split_pipelines(args.pipelines))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="platform",
        description="Check out, build and release a set of dependent repositories",
    )
    parser.add_argument(
        "--config",
        default="platform.json",
        help="Path to the platform description file.",
    )
    parser.add_argument("--context", required=True, help="Context to operate on.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    checkout_parser = subparsers.add_parser("checkout", help="Check out every repository on the context branches")
    checkout_parser.set_defaults(func=cmd_checkout)

    build_parser_ = subparsers.add_parser("build", help="Build sources and images in dependency order")
    build_parser_.add_argument("--push-images", action="store_true", help="Push images after building.")
    build_parser_.add_argument("--no-checkout", action="store_true", help="Build the current checkouts as they are.")
    build_parser_.set_defaults(func=cmd_build)

    reset_parser = subparsers.add_parser("reset-context", help="Discard local changes in every repository")
    reset_parser.set_defaults(func=cmd_reset_context)

    merge_parser = subparsers.add_parser("merge-context", help="Merge the branches of another context")
    merge_parser.add_argument("--from-context", required=True)
    merge_parser.add_argument("--no-checkout", action="store_true", help="Merge into the current checkouts.")
    merge_parser.set_defaults(func=cmd_merge_context)

    push_parser = subparsers.add_parser("push-context", help="Push context branches that differ from the base context")
    push_parser.add_argument("--force", action="store_true", help="Push for real instead of a dry run.")
    push_parser.set_defaults(func=cmd_push_context)

    execute_parser = subparsers.add_parser("execute", help="Render and run pipeline templates")
    execute_parser.add_argument(
        "--pipelines",
        action="append",
        required=True,
        help="Pipeline ids, comma separated or repeated.",
    )
    execute_parser.set_defaults(func=cmd_execute)

    return parser


def install_signal_handlers(cancel: CancelToken) -> None:
    def _handle_signal(signum, frame):  # noqa: ARG001
        log.warning("received %s, cancelling", signal.Signals(signum).name)
        cancel.cancel()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cancel = CancelToken()
    install_signal_handlers(cancel)
    try:
        platform = load_platform(args.config)
        orchestrator = create_orchestrator(platform, silent=env_flag("SILENT"), cancel=cancel)
        args.func(orchestrator, args)
    except PlatformError as exc:
        log.critical("failed to execute command %s: %s", args.command, exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
