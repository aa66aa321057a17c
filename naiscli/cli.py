"""The ``nais`` command line."""

from __future__ import annotations

import argparse
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Iterable, Optional, Sequence

import psutil
import requests

from naiscli import gcp, kubeconfig
from naiscli.aiven import AivenError
from naiscli.commands_aiven import CommandError, add_aiven_command
from naiscli.commands_debug import add_debug_command
from naiscli.doctor import Check, CheckReport, Examination, Result
from naiscli.k8s import KubeError

VERSION = "local"
COMMIT = "uncommited"

_WSL_INTEROP_PATH = Path("/proc/sys/fs/binfmt_misc/WSLInterop")
_PROC_VERSION_PATH = Path("/proc/version")

_KOLIDE_CHECK_NAME = "Is Kolide and Osquery running?"

_HANDLED_ERRORS = (
    CommandError,
    gcp.GcpError,
    KubeError,
    AivenError,
    ValueError,
    OSError,
    psutil.Error,
    requests.RequestException,
    subprocess.CalledProcessError,
)


def might_be_wsl() -> bool:
    """Guess whether we are running inside Windows Subsystem for Linux."""
    distro = os.environ.get("WSL_DISTRO_NAME", "")
    if distro:
        print(f"WSL detected: WSL_DISTRO_NAME={distro}")
        return True

    if _WSL_INTEROP_PATH.exists():
        print(f'WSL detected: "{_WSL_INTEROP_PATH}" exists')
        return True

    try:
        version = _PROC_VERSION_PATH.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return False
    if "Microsoft" in version:
        print(f"WSL detected: \"{_PROC_VERSION_PATH}\" contains 'Microsoft'")
        return True
    return False


def is_running(name: str) -> bool:
    """True when a process with the given executable name is running."""
    try:
        for proc in psutil.process_iter(["name"]):
            if proc.info.get("name") == name:
                return True
    except psutil.Error as err:
        print(f"Process listing failed: {err}")
        raise
    return False


def _report(check_name: str, error: str = "") -> CheckReport:
    if error:
        return CheckReport(check_name, Result.ERROR, error)
    return CheckReport(check_name, Result.OK, "")


def _kolide_worker(check_name: str):
    def worker() -> CheckReport:
        for process, label in (("launcher", "Kolide"), ("osqueryd", "Osquery")):
            try:
                running = is_running(process)
            except psutil.Error:
                running = False
            if not running:
                return _report(check_name, f"{label} is not running")
        return _report(check_name)

    return worker


def examination() -> Examination:
    """The checks run by ``nais device doctor``."""
    return Examination(
        name="Device checks",
        checks=[Check(name=_KOLIDE_CHECK_NAME, worker=_kolide_worker(_KOLIDE_CHECK_NAME))],
    )


def run_doctor(args: argparse.Namespace) -> dict[str, CheckReport]:
    """Examine the health of the device, print and return the reports."""
    results = examination().run()
    for key, report in results.items():
        if report.result is Result.OK:
            print(f"{key} ✅")
        else:
            print(f"{key} ❌ ({report.err_msg})")
    print()
    return results


def _split_excludes(values: Optional[Iterable[str]]) -> list[str]:
    return [part for value in values or [] for part in value.split(",") if part]


def run_kubeconfig(args: argparse.Namespace) -> Path:
    """Check the login, then write a kubeconfig with the available clusters."""
    gcp.validate_user_login(False)
    if might_be_wsl():
        print("Skipping naisdevice check in WSL. Assuming it's connected and ready to go.")

    email = gcp.get_active_user_email()
    options = kubeconfig.FilterOptions(
        overwrite=bool(args.overwrite),
        from_scratch=bool(args.clear),
        exclude_clusters=_split_excludes(args.exclude),
        include_onprem=True,
        verbose=bool(args.verbose),
    )
    return kubeconfig.create_kubeconfig(email, options, getattr(args, "api", None))


def run_login(args: argparse.Namespace) -> None:
    """Log in with gcloud, updating application default credentials."""
    gcp.login()


def build_parser() -> argparse.ArgumentParser:
    """The full command line parser."""
    parser = argparse.ArgumentParser(
        prog="nais",
        description="Nais platform utility cli, respects consoledonottrack.com",
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {VERSION}-{COMMIT}")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    login = subparsers.add_parser(
        "login",
        help="Login using Google Auth.",
        description="This is a wrapper around gcloud auth login --update-adc.",
    )
    login.set_defaults(func=run_login)

    add_aiven_command(subparsers)

    device = subparsers.add_parser("device", help="Command used for management of naisdevice")
    device_commands = device.add_subparsers(dest="device_command", metavar="COMMAND")
    device_commands.required = True
    doctor = device_commands.add_parser("doctor", help="Examine the health of your naisdevice")
    doctor.set_defaults(func=run_doctor)

    kube = subparsers.add_parser(
        "kubeconfig",
        help="Create a kubeconfig file for connecting to available clusters",
        description=(
            "Create a kubeconfig file for connecting to available clusters.\n"
            "This requires that you have the gcloud command line tool installed, "
            "configured and logged\nin using:\ngcloud auth login --update-adc"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    kube.add_argument(
        "-o", "--overwrite", action="store_true",
        help="Overwrite existing kubeconfig data if conflicts are found",
    )
    kube.add_argument(
        "-c", "--clear", action="store_true",
        help="Clear existing kubeconfig before writing new data",
    )
    kube.add_argument(
        "-e", "--exclude", action="append", default=[],
        help="Exclude clusters from kubeconfig. Can be specified multiple times "
        "or as a comma separated list",
    )
    kube.add_argument("-v", "--verbose", action="store_true")
    kube.set_defaults(func=run_kubeconfig, api=None)

    add_debug_command(subparsers)
    return parser


def command_names(parser: argparse.ArgumentParser) -> list[str]:
    """The names of the parser's top-level commands."""
    for action in parser._actions:
        if isinstance(action, argparse._SubParsersAction):
            return list(action.choices)
    return []


def is_command(command: str, names: Iterable[str]) -> bool:
    """True when ``command`` is one of the known command names."""
    return command in names


def run_other_bin(binary: str, args: Sequence[str]) -> int:
    """Run an external program found on PATH; raise if it is missing or fails."""
    path = shutil.which(binary)
    if path is None:
        raise FileNotFoundError(f"executable file not found in $PATH: {binary}")
    completed = subprocess.run([path, *args], check=True)
    return completed.returncode


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line and return the exit status."""
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()

    # Unknown commands are handed to a "nais-<command>" program when there is one.
    if argv and not is_command(argv[0], command_names(parser)):
        try:
            run_other_bin(f"nais-{argv[0]}", argv[1:])
        except (OSError, subprocess.CalledProcessError):
            pass
        else:
            return 0

    args = parser.parse_args(argv)
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return 0

    try:
        func(args)
    except _HANDLED_ERRORS as err:
        print(err)
        return 1
    return 0