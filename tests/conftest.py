import random

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from app import create_app
from http_metrics import METRIC_NAME, reset_http_metrics
from latency import LatencyGenerator
from settings import Settings


@pytest.fixture(autouse=True)
def fresh_http_metrics():
    reset_http_metrics()
    yield
    reset_http_metrics()


@pytest.fixture
def reader():
    return InMemoryMetricReader()


@pytest.fixture
def meter_provider(reader):
    provider = MeterProvider(metric_readers=[reader])
    yield provider
    provider.shutdown()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def latency_generator(sleeps):
    return LatencyGenerator(rng=random.Random(1234), sleep=sleeps.append)


@pytest.fixture
def app(meter_provider, latency_generator):
    return create_app(
        Settings(service_name="latency-lab-test"),
        meter_provider=meter_provider,
        latency_generator=latency_generator,
    )


@pytest.fixture
def client(app):
    return app.test_client()


def duration_points(reader):
    data = reader.get_metrics_data()
    if data is None:
        return []
    points = []
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                if metric.name == METRIC_NAME:
                    points.extend(metric.data.data_points)
    return points


def sample_count(reader):
    return sum(p.count for p in duration_points(reader))
