"""Build a kubeconfig file with the clusters found in GCP projects."""

from __future__ import annotations

import base64
import binascii
import enum
import json
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator

import requests
import yaml

from naiscli.gcp import GcpError

_EXEC_API_VERSION = "client.authentication.k8s.io/v1beta1"
_SEARCH_URL = "https://cloudresourcemanager.googleapis.com/v3/projects:search"
_CLUSTERS_URL = "https://container.googleapis.com/v1/projects/{project}/locations/-/clusters"
_PROJECT_URL = "https://compute.googleapis.com/compute/v1/projects/{project}"

# Kubeconfig list sections and the key each entry's payload lives under.
_SECTIONS = {"clusters": "cluster", "contexts": "context", "users": "user"}


class Kind(enum.Enum):
    """The kind of cluster a project holds, taken from its labels."""

    ONPREM = 0
    KNADA = 1
    NAIS = 2
    LEGACY = 3
    MANAGEMENT = 4
    UNKNOWN = 5


def parse_kind(value: str) -> Kind:
    """Parse a project's ``kind`` label, case-insensitively."""
    return {
        "knada": Kind.KNADA,
        "onprem": Kind.ONPREM,
        "nais": Kind.NAIS,
        "legacy": Kind.LEGACY,
        "managment": Kind.MANAGEMENT,
    }.get(value.lower(), Kind.UNKNOWN)


def cluster_server_for_legacy_gcp(name: str) -> str:
    """The fixed server address of a legacy GCP cluster."""
    return {
        "prod-gcp": "https://10.255.240.6",
        "ci-gcp": "https://10.255.240.7",
    }.get(name, "unknown-cluster")


@dataclass
class FilterOptions:
    """What to include and how to treat existing kubeconfig data."""

    from_scratch: bool = False
    include_ci: bool = False
    include_knada: bool = False
    include_management: bool = False
    include_onprem: bool = False
    overwrite: bool = False
    verbose: bool = False
    exclude_clusters: list[str] = field(default_factory=list)


@dataclass
class OnpremUser:
    """Credentials used to log in to an on-premises cluster."""

    server_id: str
    client_id: str
    tenant_id: str
    user_name: str


@dataclass
class K8sCluster:
    """A cluster to be written to the kubeconfig."""

    name: str
    endpoint: str
    kind: Kind = Kind.UNKNOWN
    location: str = ""
    ca: str = ""
    user: OnpremUser | None = None
    environment: str = ""


@dataclass
class Project:
    """A GCP project that holds clusters."""

    id: str
    tenant: str
    name: str
    kind: Kind


class GcpApi:
    """Thin client for the GCP REST endpoints used to discover clusters."""

    def __init__(self, session: requests.Session | None = None, token: str | None = None) -> None:
        self._session = session or requests.Session()
        self._token = token

    def _access_token(self) -> str:
        if self._token is None:
            cmd = ["gcloud", "auth", "application-default", "print-access-token"]
            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
            except OSError as err:
                raise GcpError(f"error running '{' '.join(cmd)}' command: {err}") from err
            if proc.returncode != 0:
                raise GcpError(
                    proc.stderr.strip()
                    or f"error running '{' '.join(cmd)}' command: exit status {proc.returncode}"
                )
            self._token = proc.stdout.strip()
        return self._token

    def _get(self, url: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        response = self._session.get(
            url,
            params=params,
            headers={"Authorization": f"Bearer {self._access_token()}"},
            timeout=30,
        )
        if response.status_code >= 400:
            raise GcpError(f"{url}: {response.status_code} {response.text}")
        return response.json()

    def search_projects(self, query: str) -> Iterator[dict[str, Any]]:
        """Yield every project matching ``query``, following pagination."""
        params = {"query": query}
        while True:
            data = self._get(_SEARCH_URL, params)
            yield from data.get("projects", [])
            page_token = data.get("nextPageToken")
            if not page_token:
                return
            params = {"query": query, "pageToken": page_token}

    def list_clusters(self, project_id: str) -> list[dict[str, Any]]:
        """The GKE clusters in a project, in every location."""
        return self._get(_CLUSTERS_URL.format(project=project_id)).get("clusters", [])

    def project_metadata(self, project_id: str) -> list[dict[str, Any]]:
        """The common instance metadata items of a project."""
        data = self._get(_PROJECT_URL.format(project=project_id))
        return (data.get("commonInstanceMetadata") or {}).get("items", [])


def build_project_filter(options: FilterOptions) -> str:
    """The project search query for the given options."""
    query = "((labels.naiscluster=true AND labels.environment:*) OR labels.kind=legacy"
    if options.include_onprem:
        query += " OR labels.kind=onprem"
    if options.include_knada:
        query += " OR labels.kind=knada"
    if options.include_management:
        query += " OR labels.kind=management"
    query += ")"
    if not options.include_ci:
        query += " AND NOT labels.environment=ci*"
    return query


def get_projects(api: Any, options: FilterOptions) -> list[Project]:
    """Find the projects that hold clusters."""
    query = build_project_filter(options)
    if options.verbose:
        print(f"Filter: {query}")

    projects: list[Project] = []
    try:
        for item in api.search_projects(query):
            labels = item.get("labels") or {}
            projects.append(
                Project(
                    id=item.get("projectId", ""),
                    tenant=labels.get("tenant", ""),
                    name=labels.get("environment", ""),
                    kind=parse_kind(labels.get("kind", "")),
                )
            )
    except Exception as err:
        if "invalid_grant" in str(err):
            raise GcpError(
                "looks like you are missing Application Default Credentials, "
                "run `gcloud auth login --update-adc` first"
            ) from err
        raise

    if options.verbose:
        print("Projects:")
        for p in projects:
            print(f"{p.id}\t{p.tenant}\t{p.name}\t{p.kind.value}")
    return projects


def _gcp_clusters(api: Any, project: Project) -> list[K8sCluster]:
    clusters = []
    for cluster in api.list_clusters(project.id):
        original = cluster.get("name", "")
        name = original
        if original == "knada-gke":
            name = "knada"
        if project.tenant == "nav" and original == "nais-dev":
            name = "dev-gcp"

        kind = Kind.LEGACY if name in ("prod-gcp", "ci-gcp") else project.kind
        master_auth = cluster.get("masterAuth") or {}
        clusters.append(
            K8sCluster(
                name=name,
                endpoint="https://" + cluster.get("endpoint", ""),
                location=cluster.get("location", ""),
                ca=master_auth.get("clusterCaCertificate", ""),
                kind=kind,
                environment=project.name,
            )
        )
    return clusters


def _onprem_clusters(api: Any, project: Project) -> list[K8sCluster]:
    if project.kind is not Kind.ONPREM:
        return []
    for item in api.project_metadata(project.id):
        if item.get("key") != "kubeconfig" or item.get("value") is None:
            continue
        config = json.loads(item["value"])
        return [
            K8sCluster(
                name=project.name,
                endpoint=config.get("url", ""),
                kind=Kind.ONPREM,
                user=OnpremUser(
                    server_id=config.get("serverID", ""),
                    client_id=config.get("clientID", ""),
                    tenant_id=config.get("tenantID", ""),
                    user_name=config.get("userName", ""),
                ),
            )
        ]
    return []


def get_clusters(api: Any, projects: Iterable[Project], options: FilterOptions) -> list[K8sCluster]:
    """Collect the clusters of every project."""
    clusters: list[K8sCluster] = []
    for project in projects:
        if options.verbose:
            print(f"Getting clusters for {project.name} ({project.id}, {project.tenant})")
        if project.kind is Kind.ONPREM:
            clusters.extend(_onprem_clusters(api, project))
        else:
            clusters.extend(_gcp_clusters(api, project))
    return clusters


def get_clusters_from_gcp(api: Any, options: FilterOptions) -> list[K8sCluster]:
    """Find projects and then every cluster in them."""
    return get_clusters(api, get_projects(api, options), options)


def populate_with_clusters(config: dict[str, Any], cluster: K8sCluster, options: FilterOptions) -> None:
    """Add a cluster entry, unless one exists and overwriting is off."""
    clusters = config.setdefault("clusters", {})
    if cluster.name in clusters and not options.overwrite:
        if options.verbose:
            print(f'Cluster "{cluster.name}" already exists in kubeconfig, skipping')
        return

    entry: dict[str, Any] = {"server": cluster.endpoint}
    if cluster.ca:
        try:
            ca = base64.b64decode(cluster.ca, validate=True)
        except binascii.Error as err:
            raise ValueError(f"invalid certificate authority data for {cluster.name}: {err}") from err
        entry["certificate-authority-data"] = base64.b64encode(ca).decode("ascii")

    if cluster.kind is Kind.LEGACY:
        entry = {
            "server": cluster_server_for_legacy_gcp(cluster.name),
            "insecure-skip-tls-verify": True,
        }

    clusters[cluster.name] = entry
    print(f"Added cluster {cluster.name} to config")


def populate_with_contexts(
    config: dict[str, Any], cluster: K8sCluster, email: str, options: FilterOptions
) -> None:
    """Add a context for a cluster, unless one exists and overwriting is off."""
    contexts = config.setdefault("contexts", {})
    if cluster.name in contexts and not options.overwrite:
        if options.verbose:
            print(f'Context "{cluster.name}" already exists in kubeconfig, skipping')
        return

    user = email
    if cluster.kind is Kind.ONPREM and cluster.user is not None:
        user = cluster.user.user_name

    contexts[cluster.name] = {"cluster": cluster.name, "user": user, "namespace": "default"}
    print(f"Added context {cluster.name} for {user} to config")


def add_gcp_user(config: dict[str, Any], email: str, options: FilterOptions) -> None:
    """Add a user that authenticates with the GKE gcloud plugin."""
    users = config.setdefault("users", {})
    if email in users and not options.overwrite:
        if options.verbose:
            print(f'User "{email}" already exists in kubeconfig, skipping')
        return

    users[email] = {
        "exec": {
            "apiVersion": _EXEC_API_VERSION,
            "command": "gke-gcloud-auth-plugin",
            "env": [{"name": "CLOUDSDK_CORE_ACCOUNT", "value": email}],
            "installHint": (
                "Install gke-gcloud-auth-plugin for use with kubectl by following\n"
                "https://cloud.google.com/blog/products/containers-kubernetes/"
                "kubectl-auth-changes-in-gke"
            ),
            "interactiveMode": "IfAvailable",
            "provideClusterInfo": True,
        }
    }
    print(f"Added user {email} to config")


def add_onprem_user(config: dict[str, Any], clusters: Iterable[K8sCluster], options: FilterOptions) -> None:
    """Add the kubelogin user of the first on-premises cluster that needs one."""
    users = config.setdefault("users", {})
    for cluster in clusters:
        if cluster.kind is not Kind.ONPREM or cluster.user is None:
            continue
        user = cluster.user
        if user.user_name in users and not options.overwrite:
            if options.verbose:
                print(f'User "{user.user_name}" already exists in kubeconfig, skipping')
            continue

        users[user.user_name] = {
            "exec": {
                "apiVersion": _EXEC_API_VERSION,
                "args": [
                    "get-token",
                    "--login",
                    "devicecode",
                    "--server-id",
                    user.server_id,
                    "--client-id",
                    user.client_id,
                    "--tenant-id",
                    user.tenant_id,
                    "--legacy",
                ],
                "command": "kubelogin",
                "installHint": (
                    "Install kubelogin for use with kubectl by following\n"
                    "https://github.com/Azure/kubelogin#getting-started"
                ),
                "interactiveMode": "IfAvailable",
                "provideClusterInfo": False,
            }
        }
        print(f"Added user {user.user_name} to config")
        return


def add_users(
    config: dict[str, Any], clusters: Iterable[K8sCluster], email: str, options: FilterOptions
) -> None:
    """Add the GCP user and, when on-premises clusters are included, their user."""
    add_gcp_user(config, email, options)
    if options.include_onprem:
        add_onprem_user(config, clusters, options)


def populate_kubeconfig(
    config: dict[str, Any], clusters: Iterable[K8sCluster], email: str, options: FilterOptions
) -> None:
    """Add clusters and contexts for every cluster that is not excluded."""
    for cluster in clusters:
        if cluster.name in options.exclude_clusters:
            if options.verbose:
                print(f'Cluster "{cluster.name}" is excluded, skipping')
            continue
        populate_with_clusters(config, cluster, options)
        populate_with_contexts(config, cluster, email, options)


def default_kubeconfig_path() -> Path:
    """The kubeconfig file to read and write, honouring ``KUBECONFIG``."""
    paths = [p for p in os.environ.get("KUBECONFIG", "").split(os.pathsep) if p]
    if not paths:
        return Path.home() / ".kube" / "config"
    for p in paths:
        if Path(p).exists():
            return Path(p)
    return Path(paths[0])


def load_kubeconfig(path: Path | str) -> dict[str, Any]:
    """Read a kubeconfig; named sections become dicts keyed by name."""
    path = Path(path)
    raw: dict[str, Any] = {}
    if path.exists():
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}

    config: dict[str, Any] = {k: v for k, v in raw.items() if k not in _SECTIONS}
    for section, payload_key in _SECTIONS.items():
        config[section] = {
            item["name"]: item.get(payload_key) or {}
            for item in raw.get(section) or []
            if "name" in item
        }
    return config


def write_kubeconfig(config: dict[str, Any], path: Path | str) -> None:
    """Write a config in the form returned by :func:`load_kubeconfig`."""
    path = Path(path)
    out: dict[str, Any] = {"apiVersion": "v1", "kind": "Config"}
    out.update({k: v for k, v in config.items() if k not in _SECTIONS})
    for section, payload_key in _SECTIONS.items():
        entries = config.get(section) or {}
        out[section] = [{"name": name, payload_key: entries[name]} for name in sorted(entries)]
    out.setdefault("preferences", {})
    out.setdefault("current-context", "")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(out, sort_keys=False), encoding="utf-8")


def create_kubeconfig(
    email: str, options: FilterOptions | None = None, api: Any = None
) -> Path:
    """Discover clusters and write them to the kubeconfig; return its path."""
    options = options or FilterOptions()
    api = api if api is not None else GcpApi()
    path = default_kubeconfig_path()
    config = load_kubeconfig(path)

    if options.from_scratch:
        config["users"] = {}
        config["contexts"] = {}
        config["clusters"] = {}

    print("Retrieving clusters")
    clusters = get_clusters_from_gcp(api, options)
    print(f"Found {len(clusters)} clusters")

    add_users(config, clusters, email, options)
    populate_kubeconfig(config, clusters, email, options)
    write_kubeconfig(config, path)
    print("Kubeconfig written to", path)

    for user in config["users"].values():
        exec_config = (user or {}).get("exec")
        if not exec_config:
            continue
        command = exec_config.get("command", "")
        if shutil.which(command) is None:
            print(f"\nWARNING: {command} not found in PATH.", file=sys.stderr)
            print(exec_config.get("installHint", ""), file=sys.stderr)
    return path