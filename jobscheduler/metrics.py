from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

# Keep metrics module-level singletons
jobs_scheduled_total = Counter("jobs_scheduled_total", "Jobs submitted to the cluster", ["kind"])
jobs_cancelled_total = Counter("jobs_cancelled_total", "Jobs deleted through CancelJob")
error_count = Counter("error_count", "Errors returned by the job scheduler", ["operation"])
request_latency_seconds = Histogram("request_latency_seconds", "HTTP request latency seconds")
cluster_request_latency_seconds = Histogram(
    "cluster_request_latency_seconds", "Kubernetes API call latency seconds", ["operation"]
)


def metrics_response():
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
