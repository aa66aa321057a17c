"""Attach debug containers to the pods of a workload, and tidy them up."""

from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from naiscli.k8s import KubeError, NotFoundError

DEBUGGER_SUFFIX = "nais-debugger"
DEBUGGER_CONTAINER_DEFAULT_NAME = "debugger"
DEBUG_IMAGE_DEFAULT = "europe-north1-docker.pkg.dev/nais-io/nais/images/debug:latest"

_MAX_RETRIES = 6
_POLL_INTERVAL = 5


class _Process(Protocol):
    def wait(self) -> int: ...


def _info(message: str) -> None:
    print(f"INFO: {message}")


def _success(message: str) -> None:
    print(f"SUCCESS: {message}")


def _warning(message: str) -> None:
    print(f"WARNING: {message}")


def _error(message: str) -> None:
    print(f"ERROR: {message}")


def _spawn(args: list[str]) -> _Process:
    return subprocess.Popen(args)


def _select(options: list[str]) -> str:
    for number, option in enumerate(options, start=1):
        print(f"{number}) {option}")
    answer = input("Select a pod: ").strip()
    if answer in options:
        return answer
    try:
        index = int(answer)
    except ValueError:
        raise ValueError(f"invalid selection: {answer!r}") from None
    if not 1 <= index <= len(options):
        raise ValueError(f"invalid selection: {answer!r}")
    return options[index - 1]


def _confirm(text: str) -> bool:
    try:
        answer = input(f"{text} [y/N]: ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def debugger_container_name(pod_name: str) -> str:
    """Name of the pod copy that holds the debugger."""
    return f"{pod_name}-{DEBUGGER_SUFFIX}"


@dataclass
class DebugConfig:
    """What to debug and how."""

    workload_name: str
    namespace: str = ""
    context: str = ""
    debug_image: str = DEBUG_IMAGE_DEFAULT
    copy_pod: bool = False
    by_pod: bool = False


class Debugger:
    """Creates, attaches to and removes debug containers for a workload."""

    def __init__(
        self,
        client: Any,
        cfg: DebugConfig,
        *,
        spawn: Optional[Callable[[list[str]], _Process]] = None,
        select: Optional[Callable[[list[str]], str]] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.cfg = cfg
        self._spawn = spawn or _spawn
        self._select = select or _select
        self._confirm = confirm or _confirm
        self._sleep = sleep

    def pods_for_workload(self) -> list[dict[str, Any]]:
        """The pods of the workload, found by its name label or its app label."""
        _info("Fetching workload...")
        name = self.cfg.workload_name
        try:
            pods = self.client.list(
                "pods", self.cfg.namespace, f"app.kubernetes.io/name={name}"
            )
            if not pods:
                pods = self.client.list("pods", self.cfg.namespace, f"app={name}")
        except KubeError as err:
            raise KubeError(f"failed to get pods: {err}") from err
        return pods

    def _context_args(self) -> list[str]:
        return ["--context", self.cfg.context] if self.cfg.context else []

    def attach_command_args(self, pod_name: str) -> list[str]:
        """The kubectl command that attaches to an existing debugger container."""
        return [
            "kubectl",
            "attach",
            "-n",
            self.cfg.namespace,
            f"pod/{pod_name}",
            "-c",
            DEBUGGER_CONTAINER_DEFAULT_NAME,
            "-i",
            "-t",
            *self._context_args(),
        ]

    def debug_command_args(self, pod_name: str) -> list[str]:
        """The kubectl command that creates a debug container or pod copy."""
        args = [
            "kubectl",
            "debug",
            "-n",
            self.cfg.namespace,
            f"pod/{pod_name}",
            "-it",
            "--stdin",
            "--tty",
            "--profile=restricted",
            "-q",
            "--image",
            self.cfg.debug_image,
            *self._context_args(),
        ]
        if self.cfg.copy_pod:
            args += ["--copy-to", debugger_container_name(pod_name), "-c", "debugger"]
        else:
            args += ["--target", self.cfg.workload_name]
        return args

    def _start(self, args: list[str], what: str) -> _Process:
        try:
            return self._spawn(args)
        except OSError as err:
            raise KubeError(f"failed to start {what} command: {err}") from err

    def _attach(self, pod_name: str) -> None:
        process = self._start(self.attach_command_args(pod_name), "attach")
        _success(f"Attached to pod {pod_name}")
        code = process.wait()
        if code != 0:
            raise KubeError(f"attach command failed: exit status {code}")

    def _create_debug_pod(self, pod_name: str) -> None:
        process = self._start(self.debug_command_args(pod_name), "debug")
        if self.cfg.copy_pod:
            _info(
                "Debugging pod copy created, enable process namespace sharing in "
                f"{debugger_container_name(pod_name)}"
            )
        else:
            _info("Debugging container created...")
        _info(f"Using debugger image {self.cfg.debug_image}")

        code = process.wait()
        if code == 1:
            _info("Debugging container exited")
            return
        if code != 0:
            raise KubeError(f"debug command failed: exit status {code}")
        if self.cfg.copy_pod:
            _info(
                f"Run 'nais debug -cp {self.cfg.workload_name}' command to attach to the debug pod"
            )

    @staticmethod
    def _debugger_running(pod: dict[str, Any]) -> bool:
        statuses = (pod.get("status") or {}).get("containerStatuses") or []
        return any(
            status.get("name") == DEBUGGER_CONTAINER_DEFAULT_NAME
            and (status.get("state") or {}).get("running") is not None
            for status in statuses
        )

    def _debug_pod(self, pod_name: str) -> None:
        namespace = self.cfg.namespace
        if self.cfg.copy_pod:
            copy_name = debugger_container_name(pod_name)
            try:
                self.client.get("pod", copy_name, namespace)
            except NotFoundError:
                pass
            except KubeError as err:
                raise KubeError(
                    f"failed to check for existing debug pod copy {copy_name}: {err}"
                ) from err
            else:
                _info(f"{copy_name} already exists, trying to attach...")
                for attempt in range(_MAX_RETRIES):
                    remaining = (_MAX_RETRIES - attempt) * _POLL_INTERVAL
                    _info(
                        f"Attempt {attempt + 1}/{_MAX_RETRIES}: "
                        f"Time remaining: {remaining} seconds"
                    )
                    try:
                        pod = self.client.get("pod", copy_name, namespace)
                    except KubeError as err:
                        raise KubeError(
                            f"failed to get debug pod copy {copy_name}: {err}"
                        ) from err
                    if self._debugger_running(pod):
                        _success("Container is running. Attaching...")
                        self._attach(copy_name)
                        return
                    self._sleep(_POLL_INTERVAL)
                raise KubeError("container did not start within the expected time")
        else:
            try:
                pod = self.client.get("pod", pod_name, namespace)
            except KubeError as err:
                raise KubeError(f"failed to get pod {pod_name}: {err}") from err
            ephemeral = (pod.get("spec") or {}).get("ephemeralContainers") or []
            if ephemeral:
                _warning(
                    f"The container {pod_name} already has {len(ephemeral)} "
                    "terminated debug containers."
                )
                _info(
                    f"Please consider using 'nais debug tidy {self.cfg.workload_name}' "
                    "to clean up"
                )
        self._create_debug_pod(pod_name)

    def debug(self) -> None:
        """Start a debug session on the first (or a chosen) pod of the workload."""
        pods = self.pods_for_workload()
        pod_names = [(pod.get("metadata") or {}).get("name", "") for pod in pods]
        if not pod_names:
            _info("No pods found.")
            return

        pod_name = pod_names[0]
        if self.cfg.by_pod:
            try:
                pod_name = self._select(pod_names)
            except (ValueError, EOFError) as err:
                _error(f"Prompt failed: {err}")
                raise

        try:
            self._debug_pod(pod_name)
        except KubeError as err:
            _error(f"Failed to debug pod {pod_name}: {err}")

    def tidy(self) -> None:
        """Offer to delete debug pod copies or pods that carry debug containers."""
        pods = self.pods_for_workload()
        if not pods:
            _info("No pods found")
            return

        namespace = self.cfg.namespace
        for pod in pods:
            original = (pod.get("metadata") or {}).get("name", "")
            pod_name = debugger_container_name(original) if self.cfg.copy_pod else original

            ephemeral = (pod.get("spec") or {}).get("ephemeralContainers") or []
            if not self.cfg.copy_pod and not ephemeral:
                _info(f"No debug container found for: {original}")
                continue

            try:
                self.client.get("pod", pod_name, namespace)
            except NotFoundError:
                _info(f"No debug pod found for: {original}")
                continue
            except KubeError as err:
                _error(f"Failed to get pod {pod_name}: {err}")
                raise

            if not self._confirm(
                f"Pod '{pod_name}' with debug container, do you want to clean up?"
            ):
                _info(f"Skipping deletion for pod: {pod_name}")
                continue

            try:
                self.client.delete("pod", pod_name, namespace)
            except KubeError as err:
                _error(f"Failed to delete pod {pod_name}: {err}")
            else:
                _success(f"Deleted pod: {pod_name}")