"""Create AivenApplications and tidy up locally stored Aiven secrets."""

from __future__ import annotations

import os
import shutil
import tempfile
import zlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from naiscli.aiven_services import OpenSearchAccess, Service, ServiceSetup
from naiscli.k8s import KubeError, NotFoundError

FOLDER_PREFIX = "aiven-secret-"
AIVENATOR_PROTECTED_ANNOTATION = "aivenator.aiven.nais.io/protected"
AIVENATOR_PROTECTED_EXPIRE_AT_ANNOTATION = "aivenator.aiven.nais.io/with-time-limit"

_API_VERSION = "aiven.nais.io/v1"


class AivenError(Exception):
    """Raised when an Aiven operation fails."""


@dataclass
class AivenProperties:
    """What the AivenApplication is to be made from."""

    username: str
    namespace: str
    secret_name: str
    expiry: int
    service: Service


@dataclass
class Aiven:
    """Generates an AivenApplication in a cluster."""

    client: Any
    properties: AivenProperties

    def generate_application(self) -> dict[str, Any]:
        """Create or update the AivenApplication and return it."""
        props = self.properties
        validate_namespace(self.client, props.namespace)

        secret_name = props.secret_name or create_secret_name(props.username, props.namespace)
        app = self._application(secret_name)
        try:
            self._create_or_update(app)
        except (AivenError, KubeError) as err:
            raise AivenError(f"create/update: {err}") from err
        return app

    def _application(self, secret_name: str) -> dict[str, Any]:
        props = self.properties
        expires_at = datetime.now(timezone.utc) + timedelta(days=props.expiry)
        spec: dict[str, Any] = {
            "secretName": secret_name,
            "protected": True,
            "expiresAt": expires_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        props.service.apply(spec, props.namespace)
        return {
            "apiVersion": _API_VERSION,
            "kind": "AivenApplication",
            "metadata": {
                "name": props.username.replace(".", "-"),
                "namespace": props.namespace,
            },
            "spec": spec,
        }

    def _create_or_update(self, app: dict[str, Any]) -> None:
        props = self.properties
        name = app["metadata"]["name"]
        try:
            existing = self.client.get("aivenapplication", props.username, props.namespace)
        except NotFoundError:
            self.client.create(app)
            print(f"AivenApplication: '{name}' created.")
            return
        except KubeError:
            return

        metadata = existing.get("metadata") or {}
        if metadata.get("ownerReferences"):
            raise AivenError(
                f"username '{props.username}' is owned by another resource; "
                "overwrite is not allowed"
            )
        if "resourceVersion" in metadata:
            app["metadata"]["resourceVersion"] = metadata["resourceVersion"]
        self.client.update(app)
        print(f"AivenApplication: '{name}' updated.")


def setup(
    client: Any,
    service: Service,
    username: str,
    namespace: str,
    secret_name: str,
    instance: str,
    pool: str,
    access: OpenSearchAccess,
    expiry: int,
) -> Aiven:
    """Configure the service and return an Aiven ready to generate."""
    service.setup(ServiceSetup(instance=instance, pool=pool, access=access))
    return Aiven(
        client,
        AivenProperties(
            username=username,
            namespace=namespace,
            secret_name=secret_name,
            expiry=int(expiry),
            service=service,
        ),
    )


def validate_namespace(client: Any, name: str) -> None:
    """Ensure the namespace exists."""
    try:
        client.get("namespace", name)
    except KubeError as err:
        raise AivenError(f"get namespace: {err}") from err


def short_name(base_name: str, max_length: int) -> str:
    """Shorten a name to fit ``max_length``, keeping it unique with a checksum."""
    if len(base_name) < max_length:
        return base_name
    digest = f"{zlib.crc32(base_name.encode('utf-8')):08x}"
    keep = max_length - len(digest) - 1
    if keep < 1:
        raise ValueError(f"maximum length {max_length} is too short to shorten {base_name!r}")
    return f"{base_name[:keep].rstrip('-')}-{digest}"


def create_secret_name(name: str, namespace: str) -> str:
    """A secret name derived from the user and namespace."""
    base_name = f"{name}-{namespace.replace('.', '-')}"
    try:
        return short_name(base_name, 64)
    except ValueError as err:
        raise AivenError(f"could not create secretName: {err}") from err


def has_annotation(secret: dict[str, Any], key: str) -> bool:
    """True when the secret carries the annotation with the value "true"."""
    annotations = (secret.get("metadata") or {}).get("annotations") or {}
    return annotations.get(key) == "true"


def create_default_destination() -> str:
    """Create a fresh temporary directory for generated configuration."""
    try:
        return tempfile.mkdtemp(prefix=FOLDER_PREFIX)
    except OSError as err:
        raise AivenError(f"failed to create temporary directory: {err}") from err


def find_folders_to_remove() -> list[str]:
    """Every directory under the temporary directory whose path holds the prefix."""
    folders = []
    for dirpath, dirnames, _ in os.walk(tempfile.gettempdir(), onerror=lambda _err: None):
        dirnames[:] = sorted(d for d in dirnames if not os.path.islink(os.path.join(dirpath, d)))
        if FOLDER_PREFIX in dirpath:
            folders.append(dirpath)
    return folders


def tidy(folders: list[str]) -> None:
    """Delete the given folders, or report that there is nothing to do."""
    if not folders:
        print("All tidy")
        return
    for folder in folders:
        print(f"Deleting: {folder}")
        if not os.path.lexists(folder):
            continue
        try:
            shutil.rmtree(folder)
        except OSError as err:
            raise AivenError(f"failed deleting {folder}: {err}") from err


def tidy_local_secrets() -> None:
    """Remove every locally generated Aiven secret folder."""
    tidy(find_folders_to_remove())