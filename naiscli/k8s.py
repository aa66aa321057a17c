"""A small Kubernetes client that works through kubectl."""

from __future__ import annotations

import json
import subprocess
from typing import Any, Callable, Optional

_CONFIG_ERROR = (
    "Unable to configure Kubernetes client. "
    "Check that naisdevice is connected, and your selected context is correct"
)


class KubeError(Exception):
    """Raised when a Kubernetes request fails."""


class NotFoundError(KubeError):
    """Raised when the requested object does not exist."""


def _run_kubectl(args: list[str], stdin: Optional[str] = None) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(
            ["kubectl", *args],
            input=stdin,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as err:
        raise KubeError(f"unable to run kubectl: {err}") from err


class KubeClient:
    """Get, list, create, update and delete objects in a cluster.

    ``runner`` takes the kubectl arguments and optional stdin text and
    returns a completed process; it defaults to running kubectl itself.
    """

    def __init__(
        self,
        context: str = "",
        current_namespace: str = "default",
        runner: Optional[Callable[[list[str], Optional[str]], subprocess.CompletedProcess]] = None,
    ) -> None:
        self.context = context
        self.current_namespace = current_namespace
        self._runner = runner or _run_kubectl

    def _kubectl(self, args: list[str], stdin: Optional[str] = None) -> str:
        if self.context:
            args = [*args, "--context", self.context]
        proc = self._runner(args, stdin)
        if proc.returncode != 0:
            message = (proc.stderr or "").strip() or (
                f"kubectl {' '.join(args)}: exit status {proc.returncode}"
            )
            if "(NotFound)" in message:
                raise NotFoundError(message)
            raise KubeError(message)
        return proc.stdout or ""

    @staticmethod
    def _namespace_args(namespace: Optional[str]) -> list[str]:
        return ["-n", namespace] if namespace else []

    def _json(self, args: list[str], stdin: Optional[str] = None) -> Any:
        output = self._kubectl(args, stdin)
        if not output.strip():
            return {}
        try:
            return json.loads(output)
        except json.JSONDecodeError as err:
            raise KubeError(f"unexpected kubectl output: {err}") from err

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> dict[str, Any]:
        """Fetch one object; raise NotFoundError if it does not exist."""
        return self._json(["get", kind, name, *self._namespace_args(namespace), "-o", "json"])

    def list(
        self,
        kind: str,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """List objects of a kind, optionally filtered by a label selector."""
        args = ["get", kind, *self._namespace_args(namespace), "-o", "json"]
        if label_selector:
            args += ["-l", label_selector]
        return list(self._json(args).get("items", []))

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Create an object and return it as stored by the server."""
        return self._json(["create", "-f", "-", "-o", "json"], json.dumps(obj))

    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Replace an existing object and return it as stored by the server."""
        return self._json(["replace", "-f", "-", "-o", "json"], json.dumps(obj))

    def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> None:
        """Delete one object."""
        self._kubectl(["delete", kind, name, *self._namespace_args(namespace)])


def setup_client(context: str = "") -> KubeClient:
    """A client for the given kubeconfig context, or the current one."""
    args = ["config", "view", "--minify", "-o", "jsonpath={..namespace}"]
    if context:
        args += ["--context", context]
    proc = _run_kubectl(args)
    if proc.returncode != 0:
        raise KubeError(_CONFIG_ERROR)
    namespace = (proc.stdout or "").strip() or "default"
    return KubeClient(context=context, current_namespace=namespace)