import logging
import time

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .api import jobs as jobs_api
from .config import get_settings
from .creator import JobCreator
from .dependencies import get_job_creator
from .errors import ClusterError
from .log_config import configure_logging
from .metrics import metrics_response, request_latency_seconds
from .version import build_info

_boot_settings = get_settings()
configure_logging(_boot_settings.log_level, _boot_settings.log_format)
logger = logging.getLogger(__name__)

app = FastAPI(title="JobScheduler")

app.include_router(jobs_api.router)


@app.middleware("http")
async def observe_requests(request: Request, call_next):
    start = time.time()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration = time.time() - start
        request_latency_seconds.observe(duration)
        fields = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_seconds": round(duration, 6),
        }
        if status_code >= 500:
            logger.error("request completed", extra=fields)
        else:
            logger.info("request completed", extra=fields)


@app.exception_handler(RequestValidationError)
async def invalid_argument_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(ClusterError)
async def cluster_unavailable_handler(request: Request, exc: ClusterError):
    # only reached when the cluster client cannot be built; routes map their own errors
    logger.error("cluster client unavailable", extra={"path": request.url.path, "error": exc.message})
    return JSONResponse(status_code=503, content={"detail": exc.message})


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.get("/readyz")
async def readyz(creator: JobCreator = Depends(get_job_creator)):
    try:
        await creator.cluster.ping(creator.defaults.namespace)
    except ClusterError as exc:
        logger.warning("cluster not reachable", extra={"error": exc.message})
        return JSONResponse(status_code=503, content={"ready": False, "error": exc.message})
    return {"ready": True}


@app.get("/metrics")
async def metrics():
    return metrics_response()


@app.get("/version")
async def version():
    return build_info()


def main():
    import uvicorn

    settings = get_settings()
    logger.info(
        "Starting JobScheduler service",
        extra={"port": settings.port, "namespace": settings.default_namespace, "in_cluster": settings.in_cluster},
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
