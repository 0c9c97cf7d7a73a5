import os

import pytest
from httpx import ASGITransport, AsyncClient

os.environ["TESTING"] = "1"

from jobscheduler.cluster import ClusterClient, InMemoryBatchApi
from jobscheduler.creator import JobCreator
from jobscheduler.dependencies import get_job_creator
from jobscheduler.jobs.base import JobDefaults
from jobscheduler.jobs.registry import default_registry
from jobscheduler.main import app as fastapi_app
from jobscheduler.schemas import ScheduleJobRequest, TimerJobConfig

API_HEADERS = {"X-API-Key": "dev-key"}


def timer_request(**overrides) -> ScheduleJobRequest:
    timer = {"duration_seconds": 30, "timer_name": "t1", "control_plane_endpoint": "http://cp:50053"}
    timer.update(overrides.pop("timer", {}))
    fields = {"name": "tea-timer", "timer_job": TimerJobConfig(**timer)}
    fields.update(overrides)
    return ScheduleJobRequest(**fields)


@pytest.fixture
def defaults():
    return JobDefaults()


@pytest.fixture
def batch_api():
    return InMemoryBatchApi()


@pytest.fixture
def creator(batch_api, defaults):
    return JobCreator(ClusterClient(batch_api, timeout=1.0), default_registry(), defaults)


@pytest.fixture
async def client(creator):
    fastapi_app.dependency_overrides[get_job_creator] = lambda: creator
    try:
        async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://testserver") as ac:
            yield ac
    finally:
        fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_request():
    return timer_request
