"""Shared fixtures: the worked two-source example and isolated metrics."""

import logging
import os

import pytest
import structlog
from prometheus_client import CollectorRegistry

from rankfusion.common.metrics import MetricsCollector
from rankfusion.fusion.models import RankedList


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep RANKFUSION_* variables from the outer shell out of the tests."""
    for name in list(os.environ):
        if name.upper().startswith("RANKFUSION_"):
            monkeypatch.delenv(name)
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
    structlog.reset_defaults()


@pytest.fixture
def list_a() -> RankedList:
    return RankedList.from_pairs("lexical", [("a.a", 100.0), ("a.b", 200.0), ("a.c", 800.0)])


@pytest.fixture
def list_b() -> RankedList:
    return RankedList.from_pairs("vector", [("b.a", 0.1), ("b.b", 0.12), ("a.c", 0.3)])


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector("test-service", registry=CollectorRegistry())
