from importlib import metadata

SERVICE_NAME = "JobScheduler Service"


def get_version() -> str:
    try:
        return metadata.version("jobscheduler")
    except metadata.PackageNotFoundError:
        return "dev"


def build_info() -> dict:
    return {"service": SERVICE_NAME, "version": get_version()}
