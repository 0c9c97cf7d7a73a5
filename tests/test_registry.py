import threading

import pytest

from jobscheduler.errors import NotRegisteredError, RegistrationError
from jobscheduler.jobs.registry import JobRegistry, default_registry
from jobscheduler.jobs.timer import TimerJobHandler


def test_register_and_lookup():
    registry = JobRegistry()
    handler = TimerJobHandler()
    registry.register("timer", handler)

    assert registry.lookup("timer") is handler
    assert registry.is_registered("timer")
    assert registry.count() == 1
    assert registry.list() == ["timer"]


def test_register_rejects_missing_handler():
    with pytest.raises(RegistrationError):
        JobRegistry().register("timer", None)


def test_register_rejects_kind_mismatch():
    with pytest.raises(RegistrationError, match="does not match"):
        JobRegistry().register("weather_reporter", TimerJobHandler())


def test_register_rejects_duplicates():
    registry = JobRegistry()
    registry.register("timer", TimerJobHandler())
    first = registry.lookup("timer")
    with pytest.raises(RegistrationError, match="already registered"):
        registry.register("timer", TimerJobHandler())
    assert registry.lookup("timer") is first


def test_lookup_unknown_kind():
    with pytest.raises(NotRegisteredError):
        JobRegistry().lookup("health_check")


def test_unregister():
    registry = default_registry()
    registry.unregister("timer")
    assert not registry.is_registered("timer")
    assert registry.count() == 0
    with pytest.raises(RegistrationError):
        registry.unregister("timer")


def test_registries_are_isolated():
    a, b = default_registry(), JobRegistry()
    assert a.is_registered("timer")
    assert not b.is_registered("timer")


def test_concurrent_lookups():
    registry = default_registry()
    found = []

    def worker():
        for _ in range(200):
            found.append(registry.lookup("timer"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(found) == 1600
    assert all(h is found[0] for h in found)
