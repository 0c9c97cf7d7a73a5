import json
import logging

import pytest
from pydantic import ValidationError

from jobscheduler.config import Settings
from jobscheduler.log_config import JSONFormatter, TextFormatter


def test_defaults():
    settings = Settings(_env_file=None)
    defaults = settings.job_defaults()
    assert settings.port == 50054
    assert defaults.namespace == "default"
    assert defaults.cpu_request == "100m"
    assert defaults.memory_limit == "128Mi"
    assert defaults.ttl_seconds == 86400
    assert defaults.restart_policy == "Never"
    assert defaults.backoff_limit == 3


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("JOBSCHEDULER_DEFAULT_NAMESPACE", "batch")
    monkeypatch.setenv("JOBSCHEDULER_DEFAULT_REGISTRY", "reg.io")
    monkeypatch.setenv("JOBSCHEDULER_LOG_LEVEL", "WARN")
    settings = Settings(_env_file=None)
    assert settings.job_defaults().namespace == "batch"
    assert settings.job_defaults().registry == "reg.io"
    assert settings.log_level == "warning"


@pytest.mark.parametrize(
    "field, value",
    [("port", 0), ("port", 70000), ("default_namespace", " "), ("log_level", "chatty")],
)
def test_invalid_settings(field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def _record(**extra):
    record = logging.LogRecord("jobscheduler.test", logging.INFO, __file__, 1, "Scheduled job", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_structured_fields():
    entry = json.loads(JSONFormatter().format(_record(job_id="job-1", namespace="default")))
    assert entry["message"] == "Scheduled job"
    assert entry["level"] == "INFO"
    assert entry["job_id"] == "job-1"
    assert entry["namespace"] == "default"


def test_text_formatter_appends_fields():
    line = TextFormatter("%(levelname)s %(message)s").format(_record(job_id="job-1"))
    assert line == "INFO Scheduled job job_id=job-1"
