import pytest

from naiscli.debug import (
    DEBUG_IMAGE_DEFAULT,
    DebugConfig,
    Debugger,
    debugger_container_name,
)
from naiscli.k8s import KubeError, NotFoundError


class FakeClient:
    def __init__(self, pods_by_selector=None, objects=None, failing=(), list_error=False):
        self.pods_by_selector = pods_by_selector or {}
        self.objects = objects or {}
        self.failing = set(failing)
        self.list_error = list_error
        self.selectors = []
        self.deleted = []

    def list(self, kind, namespace=None, label_selector=None):
        self.selectors.append(label_selector)
        if self.list_error:
            raise KubeError("boom")
        return self.pods_by_selector.get(label_selector, [])

    def get(self, kind, name, namespace=None):
        if name in self.failing:
            raise KubeError("forbidden")
        if name not in self.objects:
            raise NotFoundError(f"pods {name} (NotFound)")
        return self.objects[name]

    def delete(self, kind, name, namespace=None):
        self.deleted.append(name)


class FakeProcess:
    def __init__(self, code):
        self.code = code

    def wait(self):
        return self.code


class Spawner:
    def __init__(self, code=0):
        self.code = code
        self.calls = []

    def __call__(self, args):
        self.calls.append(args)
        return FakeProcess(self.code)


def pod(name, ephemeral=None, running_debugger=False):
    result = {"metadata": {"name": name}, "spec": {}, "status": {}}
    if ephemeral:
        result["spec"]["ephemeralContainers"] = ephemeral
    if running_debugger:
        result["status"]["containerStatuses"] = [
            {"name": "debugger", "state": {"running": {"startedAt": "now"}}}
        ]
    return result


def test_debugger_container_name():
    assert debugger_container_name("myapp-1") == "myapp-1-nais-debugger"


def test_attach_command_args_with_context():
    cfg = DebugConfig(workload_name="myapp", namespace="team", context="dev")
    d = Debugger(FakeClient(), cfg)
    assert d.attach_command_args("p1") == [
        "kubectl", "attach", "-n", "team", "pod/p1", "-c", "debugger",
        "-i", "-t", "--context", "dev",
    ]


def test_debug_command_args_live_pod():
    cfg = DebugConfig(workload_name="myapp", namespace="team")
    args = Debugger(FakeClient(), cfg).debug_command_args("p1")
    assert args[:5] == ["kubectl", "debug", "-n", "team", "pod/p1"]
    assert args[-2:] == ["--target", "myapp"]
    assert "--context" not in args
    assert args[args.index("--image") + 1] == DEBUG_IMAGE_DEFAULT


def test_debug_command_args_copy_pod():
    cfg = DebugConfig(workload_name="myapp", namespace="team", copy_pod=True)
    args = Debugger(FakeClient(), cfg).debug_command_args("p1")
    assert args[-4:] == ["--copy-to", debugger_container_name("p1"), "-c", "debugger"]
    assert "--target" not in args


def test_pods_for_workload_falls_back_to_app_label():
    client = FakeClient(pods_by_selector={"app=myapp": [pod("p1")]})
    d = Debugger(client, DebugConfig(workload_name="myapp", namespace="team"))
    pods = d.pods_for_workload()
    assert [p["metadata"]["name"] for p in pods] == ["p1"]
    assert client.selectors == ["app.kubernetes.io/name=myapp", "app=myapp"]


def test_pods_for_workload_error():
    d = Debugger(FakeClient(list_error=True), DebugConfig(workload_name="myapp"))
    with pytest.raises(KubeError, match="failed to get pods"):
        d.pods_for_workload()


def test_debug_without_pods_starts_nothing():
    spawn = Spawner()
    d = Debugger(FakeClient(), DebugConfig(workload_name="myapp"), spawn=spawn)
    d.debug()
    assert spawn.calls == []


def test_debug_live_pod_runs_kubectl_debug():
    client = FakeClient(
        pods_by_selector={"app.kubernetes.io/name=myapp": [pod("p1"), pod("p2")]},
        objects={"p1": pod("p1")},
    )
    spawn = Spawner(code=1)
    cfg = DebugConfig(workload_name="myapp", namespace="team")
    d = Debugger(client, cfg, spawn=spawn)
    d.debug()
    assert spawn.calls == [d.debug_command_args("p1")]


def test_debug_by_pod_uses_selection():
    client = FakeClient(
        pods_by_selector={"app.kubernetes.io/name=myapp": [pod("p1"), pod("p2")]},
        objects={"p2": pod("p2")},
    )
    spawn = Spawner()
    cfg = DebugConfig(workload_name="myapp", namespace="team", by_pod=True)
    d = Debugger(client, cfg, spawn=spawn, select=lambda options: options[-1])
    d.debug()
    assert spawn.calls == [d.debug_command_args("p2")]


def test_debug_copy_attaches_to_running_copy():
    copy_name = debugger_container_name("p1")
    client = FakeClient(
        pods_by_selector={"app.kubernetes.io/name=myapp": [pod("p1")]},
        objects={copy_name: pod(copy_name, running_debugger=True)},
    )
    spawn = Spawner()
    cfg = DebugConfig(workload_name="myapp", namespace="team", copy_pod=True)
    d = Debugger(client, cfg, spawn=spawn)
    d.debug()
    assert spawn.calls == [d.attach_command_args(copy_name)]


def test_debug_copy_gives_up_when_debugger_never_runs(capsys):
    copy_name = debugger_container_name("p1")
    client = FakeClient(
        pods_by_selector={"app.kubernetes.io/name=myapp": [pod("p1")]},
        objects={copy_name: pod(copy_name)},
    )
    spawn = Spawner()
    sleeps = []
    cfg = DebugConfig(workload_name="myapp", namespace="team", copy_pod=True)
    Debugger(client, cfg, spawn=spawn, sleep=sleeps.append).debug()
    assert spawn.calls == []
    assert len(sleeps) == 6
    assert "container did not start within the expected time" in capsys.readouterr().out


def test_debug_copy_creates_copy_when_missing():
    client = FakeClient(pods_by_selector={"app.kubernetes.io/name=myapp": [pod("p1")]})
    spawn = Spawner()
    cfg = DebugConfig(workload_name="myapp", namespace="team", copy_pod=True)
    d = Debugger(client, cfg, spawn=spawn)
    d.debug()
    assert spawn.calls == [d.debug_command_args("p1")]


def test_debug_reports_failure_without_raising(capsys):
    client = FakeClient(
        pods_by_selector={"app.kubernetes.io/name=myapp": [pod("p1")]},
        objects={"p1": pod("p1")},
    )
    cfg = DebugConfig(workload_name="myapp", namespace="team")
    Debugger(client, cfg, spawn=Spawner(code=2)).debug()
    assert "Failed to debug pod p1" in capsys.readouterr().out


def test_tidy_skips_pods_without_debug_containers():
    client = FakeClient(
        pods_by_selector={"app.kubernetes.io/name=myapp": [pod("p1")]},
        objects={"p1": pod("p1")},
    )
    d = Debugger(client, DebugConfig(workload_name="myapp"), confirm=lambda text: True)
    d.tidy()
    assert client.deleted == []


def test_tidy_deletes_confirmed_pods():
    p1 = pod("p1", ephemeral=[{"name": "debugger-abc"}])
    p2 = pod("p2", ephemeral=[{"name": "debugger-def"}])
    client = FakeClient(
        pods_by_selector={"app.kubernetes.io/name=myapp": [p1, p2]},
        objects={"p1": p1, "p2": p2},
    )
    d = Debugger(
        client, DebugConfig(workload_name="myapp"), confirm=lambda text: "'p1'" in text
    )
    d.tidy()
    assert client.deleted == ["p1"]


def test_tidy_copy_deletes_existing_copies_only():
    copy_name = debugger_container_name("p1")
    client = FakeClient(
        pods_by_selector={"app.kubernetes.io/name=myapp": [pod("p1"), pod("p2")]},
        objects={copy_name: pod(copy_name)},
    )
    cfg = DebugConfig(workload_name="myapp", copy_pod=True)
    Debugger(client, cfg, confirm=lambda text: True).tidy()
    assert client.deleted == [copy_name]


def test_tidy_raises_on_unexpected_error():
    p1 = pod("p1", ephemeral=[{"name": "debugger-abc"}])
    client = FakeClient(
        pods_by_selector={"app.kubernetes.io/name=myapp": [p1]},
        failing={"p1"},
    )
    d = Debugger(client, DebugConfig(workload_name="myapp"), confirm=lambda text: True)
    with pytest.raises(KubeError, match="forbidden"):
        d.tidy()
    assert client.deleted == []