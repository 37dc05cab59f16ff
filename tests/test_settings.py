import pytest
from opentelemetry.sdk.metrics import MeterProvider

from prometheus_metrics import MetricsBackendUnavailable, build_meter_provider
from settings import Settings


def test_defaults():
    s = Settings.from_env({})
    assert s == Settings()
    assert (s.host, s.port, s.metrics_exporter) == ("0.0.0.0", 5000, "prometheus")


def test_from_env():
    s = Settings.from_env(
        {
            "HOST": "127.0.0.1",
            "PORT": "8081",
            "SERVICE_NAME": "lab",
            "METRICS_EXPORTER": " Console ",
            "METRICS_EXPORT_INTERVAL_MS": "500",
            "LOG_LEVEL": "debug",
        }
    )
    assert s == Settings(
        host="127.0.0.1",
        port=8081,
        service_name="lab",
        metrics_exporter="console",
        metrics_export_interval_ms=500,
        log_level="DEBUG",
    )


def test_bad_port_fails():
    with pytest.raises(ValueError):
        Settings.from_env({"PORT": "eighty"})


def test_console_exporter_builds_provider():
    provider = build_meter_provider(Settings(metrics_exporter="console", metrics_export_interval_ms=60000))
    try:
        assert isinstance(provider, MeterProvider)
    finally:
        provider.shutdown()


def test_unknown_exporter():
    with pytest.raises(MetricsBackendUnavailable, match="statsd"):
        build_meter_provider(Settings(metrics_exporter="statsd"))
