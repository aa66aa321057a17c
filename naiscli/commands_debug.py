"""The ``debug`` command: create, attach to and tidy debug containers."""

from __future__ import annotations

import argparse
from typing import Any

from naiscli.commands_aiven import CommandError
from naiscli.debug import DEBUG_IMAGE_DEFAULT, DebugConfig, Debugger
from naiscli.k8s import KubeError, setup_client

_ARGS_USAGE = "workloadname"


def add_debug_command(subparsers: Any) -> argparse.ArgumentParser:
    """Register ``debug`` (and ``debug tidy``) on a subparsers object."""
    parser = subparsers.add_parser(
        "debug",
        help="Create and attach to a debug container",
        usage="%(prog)s [options] workloadname | %(prog)s tidy [options] workloadname",
        description=(
            "Create and attach to a debug pod or container.\n"
            "When flag '--copy' is set, the command can be used to debug a copy of the "
            "original pod, allowing you to troubleshoot without affecting the live pod.\n"
            "To debug a live pod, run the command without the '--copy' flag.\n"
            "You can only reconnect to the debug session if the pod is running.\n"
            "Use 'tidy workloadname' to remove debug containers; "
            "set '--copy' to delete copy pods."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("workload", nargs="*", metavar=_ARGS_USAGE)
    parser.add_argument(
        "-c", "--context", default="", metavar="CONTEXT",
        help="The kubeconfig CONTEXT to use (default: the current context)",
    )
    parser.add_argument(
        "-cp", "--copy", action="store_true",
        help="Create or delete a COPY of the pod with a debug container; "
        "the original pod remains running and unaffected",
    )
    parser.add_argument(
        "-n", "--namespace", default="", metavar="NAMESPACE",
        help="The NAMESPACE to use (default: the current namespace)",
    )
    parser.add_argument(
        "-p", "--by-pod", dest="by_pod", action="store_true",
        help="Choose a specific pod in the workload (default: the first pod)",
    )
    parser.set_defaults(func=run_debug, client_factory=setup_client)
    return parser


def _require_workload(args: argparse.Namespace) -> None:
    if not args.workload:
        raise CommandError(f"missing required arguments: {_ARGS_USAGE}")


def make_config(args: argparse.Namespace) -> DebugConfig:
    """The debug settings given on the command line."""
    return DebugConfig(
        workload_name=args.workload[0] if args.workload else "",
        namespace=args.namespace or "",
        debug_image=DEBUG_IMAGE_DEFAULT,
        copy_pod=bool(args.copy),
        by_pod=bool(getattr(args, "by_pod", False)),
    )


def _debugger(args: argparse.Namespace) -> Debugger:
    cfg = make_config(args)
    cluster = args.context or ""
    try:
        client = args.client_factory(cluster)
    except KubeError as err:
        raise CommandError(str(err)) from err
    if not cfg.namespace:
        cfg.namespace = client.current_namespace
    if cluster:
        cfg.context = cluster
    return Debugger(client, cfg)


def run_debug(args: argparse.Namespace) -> None:
    """Debug the workload, or tidy it when the first argument is ``tidy``."""
    if args.workload[:1] == ["tidy"]:
        args.workload = args.workload[1:]
        run_tidy(args)
        return
    _require_workload(args)
    try:
        _debugger(args).debug()
    except (KubeError, ValueError, EOFError) as err:
        raise CommandError(f"debugging instance: {err}") from err


def run_tidy(args: argparse.Namespace) -> None:
    """Clean up debug containers and debug pod copies of the workload."""
    _require_workload(args)
    try:
        _debugger(args).tidy()
    except KubeError as err:
        raise CommandError(f"debugging instance: {err}") from err