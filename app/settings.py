"""
Environment driven settings for the latency-lab service.
Read once at bootstrap; see create_app() in app.py.
"""
import logging
import os
import sys
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 5000
    service_name: str = "latency-lab"
    metrics_exporter: str = "prometheus"
    metrics_export_interval_ms: int = 10000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        return cls(
            host=env.get("HOST", cls.host),
            port=int(env.get("PORT", cls.port)),
            service_name=env.get("SERVICE_NAME", cls.service_name),
            metrics_exporter=env.get("METRICS_EXPORTER", cls.metrics_exporter).strip().lower(),
            metrics_export_interval_ms=int(
                env.get("METRICS_EXPORT_INTERVAL_MS", cls.metrics_export_interval_ms)
            ),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
        )


def configure_logging(level="INFO"):
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("[%(name)s] %(message)s"))
    root.addHandler(handler)
    root.setLevel(level)
