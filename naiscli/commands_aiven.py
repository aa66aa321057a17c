"""The ``aiven`` command: create protected AivenApplications and tidy local secrets."""

from __future__ import annotations

import argparse
from typing import Any

from naiscli import aiven
from naiscli.aiven_services import (
    OPEN_SEARCH_ACCESSES,
    Kafka,
    OpenSearch,
    OpenSearchAccess,
    Service,
    from_string,
    kafka_pool_from_string,
    open_search_access_from_string,
)
from naiscli.k8s import KubeError, setup_client

_DEFAULT_POOL = "nav-dev"


class CommandError(Exception):
    """Raised when a command is given bad input or fails."""


def add_aiven_command(subparsers: Any) -> argparse.ArgumentParser:
    """Register ``aiven`` and its subcommands on a subparsers object."""
    parser = subparsers.add_parser(
        "aiven", help="Command used for management of AivenApplication"
    )
    commands = parser.add_subparsers(dest="aiven_command", metavar="COMMAND")
    commands.required = True

    create = commands.add_parser(
        "create",
        help="Creates a protected and time-limited AivenApplication",
        usage="%(prog)s [options] service username namespace",
    )
    create.add_argument("arguments", nargs="*", metavar="service username namespace")
    create.add_argument("-e", "--expire", type=int, default=1)
    create.add_argument("-p", "--pool", default=None)
    create.add_argument("-s", "--secret", default="")
    create.add_argument("-i", "--instance", default=None)
    create.add_argument("-a", "--access", default=None)
    create.set_defaults(func=run_create, client_factory=setup_client)

    tidy = commands.add_parser(
        "tidy",
        help="Clean up /tmp/aiven-secret-* made by nais-cli",
        description=(
            "Remove '/tmp' folder '$TMPDIR' and files created by the aiven command\n"
            "Caution - This will delete all files in '/tmp' folder starting with "
            "'aiven-secret-'"
        ),
    )
    tidy.set_defaults(func=run_tidy)
    return parser


def _service(name: str) -> Service:
    try:
        return from_string(name)
    except ValueError as err:
        raise CommandError(str(err)) from err


def _require_service(flag: str, expected: Service, actual: Service) -> None:
    if not actual.is_same(expected):
        raise CommandError(
            f"--{flag} is only supported for {type(expected).__name__}, not {actual.name}"
        )


def validate_create_args(args: argparse.Namespace) -> Service:
    """Check the arguments of ``aiven create`` and return the chosen service."""
    arguments = list(args.arguments)
    if len(arguments) < 3:
        raise CommandError("missing required arguments: service, username, namespace")

    service = _service(arguments[0])
    if args.pool is not None:
        _require_service("pool", Kafka(), service)
    if args.instance is not None:
        _require_service("instance", OpenSearch(), service)
    if args.access is not None:
        _require_service("access", OpenSearch(), service)
    if args.expire < 0:
        raise CommandError(f"--expire must not be negative, got {args.expire}")
    return service


def run_create(args: argparse.Namespace) -> dict[str, Any]:
    """Create or update the AivenApplication and return it."""
    service = validate_create_args(args)
    username, namespace = args.arguments[1], args.arguments[2]

    try:
        pool = kafka_pool_from_string(args.pool if args.pool is not None else _DEFAULT_POOL)
    except ValueError as err:
        raise CommandError(
            "valid values for pool should specify tenant and environment "
            f"separated by a dash (-): {err}"
        ) from err

    access = OpenSearchAccess.READ
    try:
        access = open_search_access_from_string(args.access or "")
    except ValueError as err:
        if service.is_same(OpenSearch()):
            raise CommandError(
                f"valid values for access: {', '.join(OPEN_SEARCH_ACCESSES)}"
            ) from err

    client = args.client_factory()
    generator = aiven.setup(
        client,
        service,
        username,
        namespace,
        args.secret or "",
        args.instance or "",
        pool,
        access,
        args.expire,
    )
    try:
        app = generator.generate_application()
    except (aiven.AivenError, KubeError) as err:
        raise CommandError(f"an error occurred generating 'AivenApplication': {err}") from err

    print(
        "Use the following command to generate configuration secrets:\n"
        f"\tnais aiven get {service.name} {app['spec']['secretName']} "
        f"{app['metadata']['namespace']}"
    )
    return app


def run_tidy(args: argparse.Namespace) -> None:
    """Remove every locally generated Aiven secret folder."""
    try:
        aiven.tidy_local_secrets()
    except aiven.AivenError as err:
        raise CommandError(str(err)) from err