#!/usr/bin/env python3
"""Check that the configuration loads and the cluster answers.

Usage:
  python scripts/healthcheck.py

Exits 0 when jobs in the default namespace can be listed, 1 otherwise.
"""
import asyncio
import sys

from pydantic import ValidationError

from jobscheduler.cluster import ClusterClient
from jobscheduler.config import get_settings
from jobscheduler.errors import ClusterError


async def run_healthcheck() -> int:
    try:
        settings = get_settings()
    except ValidationError as exc:
        print(f"Health check failed: configuration validation failed: {exc}")
        return 1
    try:
        cluster = ClusterClient.from_settings(settings)
        await cluster.list_jobs(settings.default_namespace)
    except ClusterError as exc:
        print(f"Health check failed: failed to connect to Kubernetes: {exc}")
        return 1
    print("Health check passed")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run_healthcheck()))
