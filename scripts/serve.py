#!/usr/bin/env python3
"""Run the job scheduler API.

Usage:
  JOBSCHEDULER_IN_CLUSTER=false JOBSCHEDULER_PORT=8080 python scripts/serve.py

Set TESTING=1 to run against the in-memory batch API instead of a cluster.
"""
from jobscheduler.main import main

if __name__ == "__main__":
    main()
