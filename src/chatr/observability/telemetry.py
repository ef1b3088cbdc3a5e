"""OpenTelemetry wiring for the relay.

``configure_opentelemetry`` installs the tracer and meter providers once per
process (the FastAPI lifespan calls it). ``global_tracer`` and
``global_metrics`` are safe to use before that: the API proxies forward to
whatever provider is installed later.

Endpoints:
  - traces go over OTLP/HTTP; ``collector:4318`` becomes
    ``http://collector:4318/v1/traces``
  - metrics go over OTLP/gRPC; any scheme is stripped
"""
import logging
from contextlib import contextmanager
from typing import Any, ContextManager, Dict, List, Optional

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)

logger = logging.getLogger("chatr.observability")

_OTEL_CONFIGURED = False


def trace_endpoint_url(endpoint: str) -> str:
    url = endpoint if "://" in endpoint else f"http://{endpoint}"
    if not url.endswith("/v1/traces"):
        url = url.rstrip("/") + "/v1/traces"
    return url


def metric_endpoint_target(endpoint: str) -> str:
    return endpoint.split("://", 1)[-1].rstrip("/")


def configure_opentelemetry(
    service_name: str = "chatr",
    otlp_trace_endpoint: Optional[str] = None,
    otlp_metric_endpoint: Optional[str] = None,
    console_traces: bool = False,
) -> bool:
    """Install tracer and meter providers. Returns False if already configured.

    Without endpoints, spans are dropped (or printed with ``console_traces``)
    and metrics are aggregated in-process only.
    """
    global _OTEL_CONFIGURED
    if _OTEL_CONFIGURED:
        logger.debug("OpenTelemetry already configured, skipping re-init")
        return False

    resource = Resource.create({"service.name": service_name})

    tracer_provider = TracerProvider(resource=resource)
    if otlp_trace_endpoint:
        url = trace_endpoint_url(otlp_trace_endpoint)
        tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=url)))
        logger.info("Exporting spans over OTLP/HTTP to %s", url)
    elif console_traces:
        tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        logger.info("Printing spans to the console")
    trace.set_tracer_provider(tracer_provider)

    readers: List[MetricReader] = []
    if otlp_metric_endpoint:
        target = metric_endpoint_target(otlp_metric_endpoint)
        readers.append(
            PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=target, insecure=True))
        )
        logger.info("Exporting metrics over OTLP/gRPC to %s", target)
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=readers))

    _OTEL_CONFIGURED = True
    return True


def shutdown_opentelemetry():
    """Flush pending spans and metrics, then shut both providers down."""
    for provider in (trace.get_tracer_provider(), metrics.get_meter_provider()):
        shutdown = getattr(provider, "shutdown", None)
        if shutdown is None:
            continue
        try:
            shutdown()
        except Exception:
            logger.exception("Failed to shut down %s cleanly", type(provider).__name__)


# ------------------------------------------------------------------------------
# Tracer Wrapper
# ------------------------------------------------------------------------------

class Tracer:
    def __init__(self, name: str = "chatr"):
        self._name = name

    @contextmanager
    def start_span(
        self,
        name: str,
        attributes: Dict[str, Any] | None = None,
    ) -> ContextManager[trace.Span]:
        # Looked up per span; the provider is installed after import
        tracer = trace.get_tracer(self._name)
        with tracer.start_as_current_span(
            name,
            attributes=attributes or {},
        ) as span:
            yield span


# ------------------------------------------------------------------------------
# Metrics Wrapper
# ------------------------------------------------------------------------------

class Metrics:
    """Named instruments created on first use.

    Instruments come from the global meter, so anything recorded before
    ``configure_opentelemetry`` is forwarded once the real provider is set.
    """

    def __init__(self, name: str = "chatr"):
        self._meter = metrics.get_meter(name)
        self._counters = {}
        self._up_down = {}
        self._histograms = {}

    def increment_counter(
        self,
        name: str,
        value: int = 1,
        tags: Dict[str, str] | None = None,
    ):
        if name not in self._counters:
            self._counters[name] = self._meter.create_counter(name)
        self._counters[name].add(value, attributes=tags)

    def adjust_gauge(
        self,
        name: str,
        delta: int,
        tags: Dict[str, str] | None = None,
    ):
        """Move an up-down counter (open connections and the like) by ``delta``."""
        if name not in self._up_down:
            self._up_down[name] = self._meter.create_up_down_counter(name)
        self._up_down[name].add(delta, attributes=tags)

    def record_histogram(
        self,
        name: str,
        value: float,
        tags: Dict[str, str] | None = None,
    ):
        if name not in self._histograms:
            self._histograms[name] = self._meter.create_histogram(name)
        self._histograms[name].record(value, attributes=tags)


# ------------------------------------------------------------------------------
# Global instances
# ------------------------------------------------------------------------------

global_tracer = Tracer()
global_metrics = Metrics()
