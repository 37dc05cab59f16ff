import logging
import os
import time

from flask import Flask, jsonify

from http_metrics import RequestDurationMiddleware, RequestDurationRecorder, bind_route, init_http_metrics
from latency import LatencyGenerator
from prometheus_metrics import build_meter_provider, metrics_response
from settings import Settings, configure_logging

logger = logging.getLogger("app")


def create_app(settings=None, meter_provider=None, latency_generator=None):
    """Bootstrap: metrics backend first, then the Flask app wrapped for timing.

    Raises MetricsBackendUnavailable when no meter provider can be built.
    """
    settings = settings or Settings.from_env()
    if meter_provider is None:
        meter_provider = build_meter_provider(settings)
    latency_generator = latency_generator or LatencyGenerator()

    app = Flask(__name__)
    recorder = RequestDurationRecorder(init_http_metrics(meter_provider))
    app.extensions["duration_recorder"] = recorder
    app.wsgi_app = RequestDurationMiddleware(app.wsgi_app, recorder)
    bind_route(app)

    @app.route("/api/test", methods=["GET"])
    def api_test():
        sleep_ms = latency_generator.simulate()
        return jsonify(
            status="ok",
            sleep_ms=sleep_ms,
            timestamp=int(time.time()),
            worker_pid=os.getpid(),
        )

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify(status="healthy")

    @app.route("/metrics")
    def metrics():
        return metrics_response()

    logger.info("%s ready (exporter=%s)", settings.service_name, settings.metrics_exporter)
    return app


if __name__ == "__main__":
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = create_app(settings)
    app.run(host=settings.host, port=settings.port, threaded=True)
