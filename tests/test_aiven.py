import copy
import os
import tempfile
from datetime import datetime, timezone

import pytest

from naiscli import aiven
from naiscli.aiven_services import Kafka, OpenSearch, OpenSearchAccess
from naiscli.k8s import KubeError, NotFoundError

USERNAME = "user"
TEAM = "team"
SECRET_NAME = "secret"
EXPIRY = 1
POOL = "nav-dev"


class FakeClient:
    def __init__(self, *objects):
        self.objects = {}
        for obj in objects:
            self._store(obj)

    @staticmethod
    def _key(kind, name, namespace):
        return (kind.lower(), namespace or "", name)

    def _store(self, obj):
        meta = obj["metadata"]
        self.objects[self._key(obj["kind"], meta["name"], meta.get("namespace"))] = copy.deepcopy(obj)

    def get(self, kind, name, namespace=None):
        key = self._key(kind, name, namespace)
        if key not in self.objects:
            raise NotFoundError(f'Error from server (NotFound): {kind} "{name}" not found')
        return copy.deepcopy(self.objects[key])

    def create(self, obj):
        meta = obj["metadata"]
        if self._key(obj["kind"], meta["name"], meta.get("namespace")) in self.objects:
            raise KubeError("already exists")
        self._store(obj)
        return obj

    def update(self, obj):
        self._store(obj)
        return obj


def namespace(name):
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}


def assert_application(app):
    assert app["metadata"]["name"] == USERNAME
    assert app["metadata"]["namespace"] == TEAM
    assert app["spec"]["secretName"] == SECRET_NAME
    assert app["spec"]["kafka"]["pool"] == POOL
    expires = datetime.strptime(app["spec"]["expiresAt"], "%Y-%m-%dT%H:%M:%SZ")
    assert expires.replace(tzinfo=timezone.utc) > datetime.now(timezone.utc)


def test_generate_aiven_application_created():
    client = FakeClient(namespace(TEAM))
    a = aiven.setup(client, Kafka(), USERNAME, TEAM, SECRET_NAME, "", POOL, OpenSearchAccess.READ, EXPIRY)
    app = a.generate_application()
    assert_application(app)
    assert client.get("aivenapplication", USERNAME, TEAM)["spec"]["secretName"] == SECRET_NAME


def test_generate_aiven_application_updated():
    existing = {
        "kind": "AivenApplication",
        "metadata": {"name": USERNAME, "namespace": TEAM, "resourceVersion": "7"},
    }
    client = FakeClient(namespace(TEAM), existing)
    a = aiven.setup(client, Kafka(), USERNAME, TEAM, SECRET_NAME, "", POOL, OpenSearchAccess.READ, EXPIRY)
    app = a.generate_application()
    assert_application(app)
    assert app["metadata"]["resourceVersion"] == "7"
    assert client.get("aivenapplication", USERNAME, TEAM)["spec"]["kafka"]["pool"] == POOL


def test_generate_aiven_application_updated_has_owner_reference():
    existing = {
        "kind": "AivenApplication",
        "metadata": {
            "name": USERNAME,
            "namespace": TEAM,
            "ownerReferences": [
                {"apiVersion": "nais.io/v1alpha1", "kind": "Application", "name": USERNAME, "uid": "12345"}
            ],
        },
    }
    client = FakeClient(namespace(TEAM), existing)
    a = aiven.setup(client, Kafka(), USERNAME, TEAM, SECRET_NAME, "", POOL, OpenSearchAccess.READ, EXPIRY)
    with pytest.raises(aiven.AivenError) as info:
        a.generate_application()
    assert str(info.value) == (
        "create/update: username 'user' is owned by another resource; overwrite is not allowed"
    )


def test_generate_without_namespace_fails():
    client = FakeClient()
    a = aiven.setup(client, Kafka(), USERNAME, TEAM, SECRET_NAME, "", POOL, OpenSearchAccess.READ, EXPIRY)
    with pytest.raises(aiven.AivenError, match="get namespace"):
        a.generate_application()


def test_generate_derives_secret_name_when_missing():
    client = FakeClient(namespace(TEAM))
    a = aiven.setup(client, Kafka(), USERNAME, TEAM, "", "", POOL, OpenSearchAccess.READ, EXPIRY)
    app = a.generate_application()
    assert app["spec"]["secretName"] == aiven.create_secret_name(USERNAME, TEAM)


def test_open_search_application_spec():
    client = FakeClient(namespace(TEAM))
    a = aiven.setup(client, OpenSearch(), USERNAME, TEAM, SECRET_NAME, "logs", POOL, OpenSearchAccess.ADMIN, EXPIRY)
    app = a.generate_application()
    assert app["spec"]["openSearch"] == {"instance": "opensearch-team-logs", "access": "admin"}


def test_dotted_username_is_sanitised():
    client = FakeClient(namespace(TEAM))
    a = aiven.setup(client, Kafka(), "first.last", TEAM, SECRET_NAME, "", POOL, OpenSearchAccess.READ, EXPIRY)
    assert a.generate_application()["metadata"]["name"] == "first-last"


def test_valid_namespace():
    client = FakeClient(namespace("team-namespace"))
    aiven.validate_namespace(client, "team-namespace")
    with pytest.raises(aiven.AivenError):
        aiven.validate_namespace(client, "other")


def test_create_secret_name_short():
    assert aiven.create_secret_name(USERNAME, "my.team") == "user-my-team"


def test_short_name_long_fits_and_is_stable():
    base = "x" * 100
    first = aiven.short_name(base, 64)
    assert len(first) <= 64
    assert first == aiven.short_name(base, 64)
    assert first != aiven.short_name("y" * 100, 64)
    assert first.startswith("x")


def test_has_annotation():
    annotated = {"metadata": {"annotations": {aiven.AIVENATOR_PROTECTED_ANNOTATION: "true"}}}
    assert aiven.has_annotation(annotated, aiven.AIVENATOR_PROTECTED_ANNOTATION)
    assert not aiven.has_annotation(annotated, aiven.AIVENATOR_PROTECTED_EXPIRE_AT_ANNOTATION)
    unprotected = {"metadata": {"annotations": {aiven.AIVENATOR_PROTECTED_ANNOTATION: "false"}}}
    assert not aiven.has_annotation(unprotected, aiven.AIVENATOR_PROTECTED_ANNOTATION)


def test_aiven_tidy(tmp_path, monkeypatch):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    created = aiven.create_default_destination()
    assert os.path.basename(created).startswith(aiven.FOLDER_PREFIX)

    folders = aiven.find_folders_to_remove()
    assert len(folders) > 0
    assert created in folders

    aiven.tidy(folders)
    assert aiven.find_folders_to_remove() == []
    assert not os.path.exists(created)


def test_tidy_nothing_to_do(capsys):
    aiven.tidy([])
    assert capsys.readouterr().out.strip() == "All tidy"