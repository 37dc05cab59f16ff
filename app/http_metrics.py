"""
Per-request duration measurement for the http.server.request.duration histogram.

RequestDurationMiddleware wraps the whole WSGI app: it stamps a start time
before dispatch and records one sample per top-level request once the
wrapped app has produced its response (or failed).
https://opentelemetry.io/docs/specs/semconv/http/http-metrics/#metric-httpserverrequestduration
"""
import contextvars
import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from flask import request
from opentelemetry.semconv.attributes import (
    http_attributes,
    network_attributes,
    url_attributes,
)

logger = logging.getLogger("http_metrics")

METRIC_NAME = "http.server.request.duration"
METRIC_UNIT = "s"
METRIC_DESCRIPTION = "Duration of HTTP server requests"
DURATION_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1, 2.5, 5, 7.5, 10)

REQUEST_CONTEXT_KEY = "latency_lab.request_context"

_active_request = contextvars.ContextVar("active_request", default=None)


@dataclass
class RequestContext:
    request_id: str
    method: str
    scheme: str
    protocol_version: str
    route: Optional[str] = None
    is_main_request: bool = True

    @classmethod
    def from_environ(cls, environ, is_main_request=True):
        protocol = environ.get("SERVER_PROTOCOL", "HTTP/1.1")
        return cls(
            request_id=uuid.uuid4().hex,
            method=environ.get("REQUEST_METHOD", "GET").upper(),
            scheme=environ.get("wsgi.url_scheme", "http"),
            protocol_version=protocol.split("/", 1)[-1],
            is_main_request=is_main_request,
        )


class PendingMeasurements:
    """request_id -> monotonic start time, safe to share between threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._started = {}

    def start(self, request_id, started_at):
        with self._lock:
            if request_id in self._started:
                return False
            self._started[request_id] = started_at
            return True

    def pop(self, request_id):
        with self._lock:
            return self._started.pop(request_id, None)

    def __len__(self):
        with self._lock:
            return len(self._started)


class HttpMetrics:
    def __init__(self, meter):
        self.request_duration_histogram = meter.create_histogram(
            METRIC_NAME,
            unit=METRIC_UNIT,
            description=METRIC_DESCRIPTION,
            explicit_bucket_boundaries_advisory=DURATION_BUCKETS,
        )


_init_lock = threading.Lock()
_instance = None
_instance_provider = None


def init_http_metrics(meter_provider):
    """Build the process-wide HttpMetrics once; every later call gets the same one.

    The instrument stays bound to the first meter provider; a later call with
    a different provider is logged and still returns the existing instance.
    """
    global _instance, _instance_provider
    instance = _instance
    if instance is None:
        with _init_lock:
            if _instance is None:
                _instance = HttpMetrics(meter_provider.get_meter("latency-lab.http"))
                _instance_provider = meter_provider
                logger.info("created %s histogram (pid %s)", METRIC_NAME, os.getpid())
            instance = _instance
    if meter_provider is not _instance_provider:
        logger.warning(
            "%s already bound to another meter provider, ignoring %r", METRIC_NAME, meter_provider
        )
    return instance


def reset_http_metrics():
    global _instance, _instance_provider, _init_lock
    _instance = None
    _instance_provider = None
    _init_lock = threading.Lock()


if hasattr(os, "register_at_fork"):
    # a forked worker builds its own instrument instead of inheriting the parent's
    os.register_at_fork(after_in_child=reset_http_metrics)


class RequestDurationRecorder:
    def __init__(self, http_metrics, clock=time.perf_counter):
        self.http_metrics = http_metrics
        self.pending = PendingMeasurements()
        self._clock = clock

    def on_request_start(self, ctx):
        if not ctx.is_main_request:
            return
        try:
            started_at = self._clock()
        except Exception as e:
            logger.warning("clock read failed, request %s not timed: %s", ctx.request_id, e)
            return
        if not self.pending.start(ctx.request_id, started_at):
            logger.warning("request %s already pending, keeping first start", ctx.request_id)

    def on_request_finish(self, ctx, status_code):
        if not ctx.is_main_request:
            return
        started_at = self.pending.pop(ctx.request_id)
        if started_at is None:
            return
        try:
            duration = max(0.0, self._clock() - started_at)
            self.http_metrics.request_duration_histogram.record(
                duration, attributes=self.attributes(ctx, status_code)
            )
        except Exception as e:
            logger.warning("dropping duration sample for request %s: %s", ctx.request_id, e)

    @staticmethod
    def attributes(ctx, status_code):
        attrs = {
            http_attributes.HTTP_REQUEST_METHOD: ctx.method,
            http_attributes.HTTP_RESPONSE_STATUS_CODE: status_code,
            url_attributes.URL_SCHEME: ctx.scheme,
            network_attributes.NETWORK_PROTOCOL_VERSION: ctx.protocol_version,
        }
        if ctx.route:
            attrs[http_attributes.HTTP_ROUTE] = ctx.route
        return attrs


class RequestDurationMiddleware:
    """Outermost WSGI wrapper feeding a RequestDurationRecorder."""

    def __init__(self, wsgi_app, recorder):
        self.wsgi_app = wsgi_app
        self.recorder = recorder

    def __call__(self, environ, start_response):
        # anything dispatched while a top-level request is in flight is a sub-request
        is_main = _active_request.get() is None
        ctx = RequestContext.from_environ(environ, is_main_request=is_main)
        if is_main:
            environ[REQUEST_CONTEXT_KEY] = ctx
        status_code = 500

        def _start_response(status, headers, exc_info=None):
            nonlocal status_code
            status_code = int(status.split(" ", 1)[0])
            return start_response(status, headers, exc_info)

        token = _active_request.set(ctx.request_id) if is_main else None
        self.recorder.on_request_start(ctx)
        try:
            return self.wsgi_app(environ, _start_response)
        finally:
            if token is not None:
                _active_request.reset(token)
            self.recorder.on_request_finish(ctx, status_code)


def bind_route(app):
    """Copy the matched endpoint name onto the request's context after routing."""

    @app.before_request
    def _bind_route():
        ctx = request.environ.get(REQUEST_CONTEXT_KEY)
        if ctx is not None and request.endpoint:
            ctx.route = request.endpoint
