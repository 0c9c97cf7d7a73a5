import time

import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException

from jobscheduler import cluster as cluster_module
from jobscheduler.cluster import ClusterClient, InMemoryBatchApi, derive_status, label_selector
from jobscheduler.config import Settings
from jobscheduler.errors import ClusterError
from jobscheduler.schemas import JobStatus


def _job(name="timer-job-1", labels=None, active=None, conditions=None):
    return client.V1Job(
        metadata=client.V1ObjectMeta(name=name, namespace="default", labels=labels or {}),
        status=client.V1JobStatus(active=active, conditions=conditions),
    )


def _condition(kind, status="True"):
    return client.V1JobCondition(type=kind, status=status)


def test_status_pending_without_activity():
    assert derive_status(_job()) == JobStatus.PENDING


def test_status_running_with_active_pods():
    assert derive_status(_job(active=1)) == JobStatus.RUNNING


def test_status_terminal_conditions_win_over_active_count():
    assert derive_status(_job(active=2, conditions=[_condition("Complete")])) == JobStatus.SUCCEEDED
    assert derive_status(_job(active=2, conditions=[_condition("Failed")])) == JobStatus.FAILED


def test_status_ignores_false_conditions():
    assert derive_status(_job(conditions=[_condition("Complete", "False")])) == JobStatus.PENDING


def test_terminal_statuses():
    assert {s for s in JobStatus if s.is_terminal} == {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED}


def test_label_selector():
    assert label_selector(None) is None
    assert label_selector({"b": "2", "a": "1"}) == "a=1,b=2"


async def test_create_list_delete_round_trip():
    cluster = ClusterClient(InMemoryBatchApi(), timeout=1.0)
    created = await cluster.create_job(_job(labels={"team": "infra"}))
    assert created.metadata.creation_timestamp is not None

    assert len(await cluster.list_jobs("default", {"team": "infra"})) == 1
    assert await cluster.list_jobs("default", {"team": "other"}) == []
    assert (await cluster.get_job("default", "timer-job-1")).metadata.name == "timer-job-1"

    await cluster.delete_job("default", "timer-job-1")
    assert await cluster.list_jobs("default") == []


async def test_name_collision_is_a_cluster_error():
    cluster = ClusterClient(InMemoryBatchApi(), timeout=1.0)
    await cluster.create_job(_job())
    with pytest.raises(ClusterError) as info:
        await cluster.create_job(_job())
    assert info.value.status == 409
    assert info.value.operation == "create"


async def test_missing_object_is_a_cluster_error():
    cluster = ClusterClient(InMemoryBatchApi(), timeout=1.0)
    with pytest.raises(ClusterError) as info:
        await cluster.delete_job("default", "nope")
    assert info.value.status == 404


class _BrokenApi:
    def list_namespaced_job(self, namespace, **kwargs):
        raise ApiException(status=500, reason="etcd unavailable")


class _SlowApi:
    def list_namespaced_job(self, namespace, **kwargs):
        time.sleep(0.5)
        return client.V1JobList(items=[])


class _RecordingApi(InMemoryBatchApi):
    def __init__(self):
        super().__init__()
        self.delete_kwargs = None

    def delete_namespaced_job(self, name, namespace, **kwargs):
        self.delete_kwargs = kwargs
        return super().delete_namespaced_job(name, namespace, **kwargs)


async def test_api_errors_are_wrapped():
    with pytest.raises(ClusterError, match="etcd unavailable"):
        await ClusterClient(_BrokenApi()).list_jobs("default")


async def test_calls_are_bounded_by_timeout():
    with pytest.raises(ClusterError, match="timed out"):
        await ClusterClient(_SlowApi(), timeout=0.05).list_jobs("default")


async def test_delete_uses_foreground_propagation():
    api = _RecordingApi()
    cluster = ClusterClient(api, timeout=1.0)
    await cluster.create_job(_job())
    await cluster.delete_job("default", "timer-job-1")
    assert api.delete_kwargs["propagation_policy"] == "Foreground"
    assert api.delete_kwargs["_request_timeout"] == 1.0


async def test_ping_lists_a_single_object():
    api = InMemoryBatchApi()
    cluster = ClusterClient(api, timeout=1.0)
    await cluster.create_job(_job(name="a"))
    await cluster.create_job(_job(name="b"))
    assert len(await cluster.list_jobs("default", limit=1)) == 1
    await cluster.ping("default")


def test_missing_in_cluster_config_is_a_cluster_error(monkeypatch):
    def no_token():
        raise ConfigException("Service host/port is not set.")

    monkeypatch.setattr(cluster_module, "TESTING", False)
    monkeypatch.setattr(cluster_module.kube_config, "load_incluster_config", no_token)
    with pytest.raises(ClusterError, match="Service host/port is not set") as info:
        ClusterClient.from_settings(Settings(_env_file=None, in_cluster=True))
    assert info.value.operation == "configure"


def test_missing_kubeconfig_is_a_cluster_error(monkeypatch, tmp_path):
    monkeypatch.setattr(cluster_module, "TESTING", False)
    settings = Settings(_env_file=None, in_cluster=False, kubeconfig_path=str(tmp_path / "absent"))
    with pytest.raises(ClusterError, match="failed to load Kubernetes configuration"):
        ClusterClient.from_settings(settings)
