from .telemetry import (
    metric_endpoint_target,
    trace_endpoint_url,
    global_tracer,
    global_metrics,
    Tracer,
    Metrics,
    configure_opentelemetry,
    shutdown_opentelemetry,
)

__all__ = [
    "metric_endpoint_target",
    "trace_endpoint_url",
    "global_tracer",
    "global_metrics",
    "Tracer",
    "Metrics",
    "configure_opentelemetry",
    "shutdown_opentelemetry",
]
