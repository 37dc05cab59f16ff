from flask import Response
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest


class MetricsBackendUnavailable(RuntimeError):
    """The metrics backend could not be built; raised at startup only."""


def build_metric_reader(settings):
    exporter = settings.metrics_exporter
    if exporter == "prometheus":
        # registers itself with prometheus_client's default REGISTRY
        return PrometheusMetricReader()
    if exporter == "console":
        return PeriodicExportingMetricReader(
            ConsoleMetricExporter(),
            export_interval_millis=settings.metrics_export_interval_ms,
        )
    raise MetricsBackendUnavailable(f"unknown METRICS_EXPORTER {exporter!r}")


def build_meter_provider(settings, readers=None):
    if readers is None:
        try:
            readers = [build_metric_reader(settings)]
        except MetricsBackendUnavailable:
            raise
        except Exception as e:
            raise MetricsBackendUnavailable(f"{settings.metrics_exporter} reader failed: {e}") from e
    resource = Resource.create({SERVICE_NAME: settings.service_name})
    return MeterProvider(resource=resource, metric_readers=list(readers))


def metrics_response():
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)
