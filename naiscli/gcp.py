"""Checks and actions around the gcloud login."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

_ACCOUNT_ARGS = ["config", "list", "account", "--format", "value(core.account)"]


class GcpError(Exception):
    """Raised when the gcloud login is missing or gcloud fails."""


def _run_gcloud(args: list[str]) -> str:
    cmd = ["gcloud", *args]
    try:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, text=True, check=False)
    except OSError as err:
        raise GcpError(f"\nerror running '{' '.join(cmd)}' command: {err}") from err
    output = proc.stdout or ""
    if proc.returncode != 0:
        raise GcpError(
            f"{output}\nerror running '{' '.join(cmd)}' command: exit status {proc.returncode}"
        )
    return output


def validate_user_login(enforce_nais: bool = False) -> None:
    """Ensure there is an active gcloud user and application default credentials."""
    user = _run_gcloud(_ACCOUNT_ARGS).strip()
    if not user:
        raise GcpError(
            "missing active user, have you logged in with 'gcloud auth login --update-adc'"
        )

    if enforce_nais and not user.endswith("@nais.io"):
        raise GcpError(f"active gcloud-user is not a nais.io-user: {user}")

    if "GOOGLE_APPLICATION_CREDENTIALS" in os.environ:
        return

    if sys.platform == "win32":
        config_dir = Path(os.path.expandvars("$APPDATA"))
    else:
        config_dir = Path.home() / ".config"

    credentials = config_dir / "gcloud" / "application_default_credentials.json"
    if not credentials.exists():
        raise GcpError(
            "you are missing Application Default Credentials, "
            "run `gcloud auth login --update-adc` first"
        )


def get_active_user_email() -> str:
    """Return the e-mail address of the active gcloud account."""
    user = _run_gcloud(_ACCOUNT_ARGS).strip()
    if not user:
        raise GcpError("no users found, are you logged in")
    return user


def login() -> None:
    """Log in with gcloud and update application default credentials."""
    _run_gcloud(["auth", "login", "--update-adc"])