"""Tests for the end-to-end fusion pipeline."""

import math

import pytest

from rankfusion import fuse_ranked_lists
from rankfusion.common import metrics as metrics_module
from rankfusion.common.config import load_config
from rankfusion.fusion.base import (
    ConfigurationError,
    DegenerateRangeError,
    InvalidInputError,
)
from rankfusion.fusion.models import RankedItem, RankedList
from rankfusion.fusion import pipeline as pipeline_module
from rankfusion.fusion.pipeline import FusionPipeline


def test_worked_example(list_a, list_b):
    """Two incomparable scales fuse into the documented ranking."""
    result = fuse_ranked_lists([list_a, list_b])

    assert result.keys() == ["a.c", "a.b", "b.b", "a.a", "b.a"]
    weights = dict(result.to_pairs())
    assert weights["a.c"] == 1.0
    assert weights["a.b"] == pytest.approx(0.142857, abs=1e-6)
    assert weights["b.b"] == pytest.approx(0.1)
    assert weights["a.a"] == 0.0
    assert weights["b.a"] == 0.0


def test_worked_example_lexical_tie_break(list_a, list_b):
    result = fuse_ranked_lists([list_a, list_b], tie_break="lexical-key")
    assert result.keys() == ["a.c", "a.b", "b.b", "a.a", "b.a"]
    assert result.tie_break == "lexical-key"


def test_repeated_runs_are_identical(list_a, list_b):
    pipeline = FusionPipeline(load_config())
    first = pipeline.run([list_a, list_b])
    for _ in range(3):
        assert pipeline.run([list_a, list_b]) == first


def test_parallel_pipeline_matches_sequential(list_a, list_b):
    extra = RankedList.from_pairs("rerank", [("a.b", 3.0), ("b.a", 9.0), ("c.a", 1.0)])
    lists = [list_a, list_b, extra]
    for conflation in ("max", "sum", "mean"):
        sequential = fuse_ranked_lists(lists, conflation=conflation, max_workers=1)
        parallel = fuse_ranked_lists(lists, conflation=conflation, max_workers=4)
        assert parallel == sequential


def test_source_stats_in_result(list_a, list_b):
    result = fuse_ranked_lists([list_a, list_b])
    assert [stats.source for stats in result.sources] == ["lexical", "vector"]
    assert result.sources[0].min_weight == 100.0
    assert result.sources[0].max_weight == 800.0


def test_mapping_input():
    result = fuse_ranked_lists({
        "bm25": [("d1", 12.0), ("d2", 3.0)],
        "dense": {"d2": 0.91, "d3": 0.45},
    })
    assert result.keys() == ["d1", "d2", "d3"]
    assert result[1].contributing_sources == ("bm25", "dense")


def test_weighted_sum(list_a, list_b):
    result = fuse_ranked_lists([list_a, list_b], conflation="weighted-sum", source_weights=[0.7, 0.3])
    weights = dict(result.to_pairs())
    assert weights["a.c"] == pytest.approx(1.0)
    assert weights["a.b"] == pytest.approx(0.1)
    assert weights["b.b"] == pytest.approx(0.03)


def test_weighted_sum_requires_weights(list_a):
    with pytest.raises(ConfigurationError):
        fuse_ranked_lists([list_a], conflation="weighted-sum")


def test_weighted_sum_length_mismatch(list_a, list_b):
    with pytest.raises(ConfigurationError):
        fuse_ranked_lists([list_a, list_b], conflation="weighted-sum", source_weights=[1.0])


def test_custom_callable_conflation(list_a, list_b):
    result = fuse_ranked_lists([list_a, list_b], conflation=lambda weights: sum(weights) / 2)
    assert dict(result.to_pairs())["a.c"] == 1.0


def test_top_k(list_a, list_b):
    result = fuse_ranked_lists([list_a, list_b], top_k=2)
    assert result.keys() == ["a.c", "a.b"]


def test_degenerate_list_under_error_policy_aborts_request(list_a):
    flat = RankedList.from_pairs("flat", [("x", 5.0), ("y", 5.0), ("z", 5.0)])
    with pytest.raises(DegenerateRangeError) as excinfo:
        fuse_ranked_lists([list_a, flat], degenerate_range_policy="error")
    assert excinfo.value.source == "flat"


def test_degenerate_list_under_constant_one(list_a):
    flat = RankedList.from_pairs("flat", [("x", 5.0), ("y", 5.0), ("z", 5.0)])
    result = fuse_ranked_lists([flat], degenerate_range_policy="constant-one")
    assert result.to_pairs() == [("x", 1.0), ("y", 1.0), ("z", 1.0)]
    assert result.sources[0].degenerate is True


def test_no_lists_is_invalid():
    with pytest.raises(InvalidInputError):
        fuse_ranked_lists([])
    with pytest.raises(InvalidInputError):
        fuse_ranked_lists(None)


def test_empty_list_policy(list_a):
    with pytest.raises(InvalidInputError) as excinfo:
        fuse_ranked_lists([list_a, RankedList("empty")])
    assert excinfo.value.source == "empty"

    result = fuse_ranked_lists([list_a, RankedList("empty")], empty_list_policy="skip")
    assert result.keys() == ["a.c", "a.b", "a.a"]


def test_skipped_empty_list_keeps_weight_positions(list_a):
    result = fuse_ranked_lists(
        [RankedList("empty"), list_a],
        empty_list_policy="skip",
        conflation="weighted-sum",
        source_weights=[5.0, 2.0],
    )
    assert dict(result.to_pairs())["a.c"] == 2.0


def test_empty_key_is_invalid():
    ranked = RankedList("src", (RankedItem("ok", 1.0), RankedItem("  ", 2.0)))
    with pytest.raises(InvalidInputError) as excinfo:
        fuse_ranked_lists([ranked])
    assert excinfo.value.source == "src"
    assert excinfo.value.weight == 2.0


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_weight_is_invalid(list_a, bad):
    ranked = RankedList.from_pairs("vector", [("d1", 0.5), ("d2", bad)])
    with pytest.raises(InvalidInputError) as excinfo:
        fuse_ranked_lists([list_a, ranked])
    assert excinfo.value.source == "vector"
    assert excinfo.value.key == "d2"
    assert excinfo.value.weight == bad or math.isnan(excinfo.value.weight)


def test_weight_outside_float_range_is_invalid(list_a):
    """Integers too large for a float are rejected like non-finite weights."""
    ranked = RankedList.from_pairs("huge", [("a", 10 ** 400), ("b", 1.0)])
    with pytest.raises(InvalidInputError) as excinfo:
        fuse_ranked_lists([list_a, ranked])
    assert excinfo.value.source == "huge"
    assert excinfo.value.key == "a"
    assert excinfo.value.weight == 10 ** 400


def test_non_finite_source_weight_is_a_configuration_error(list_a):
    with pytest.raises(ConfigurationError):
        fuse_ranked_lists([list_a], conflation="weighted-sum", source_weights=[float("nan")])


class _RecordingLogger:
    def __init__(self):
        self.errors = []

    def error(self, event, **kw):
        self.errors.append((event, kw))

    def __getattr__(self, name):
        return lambda *args, **kwargs: None


def test_failed_request_is_logged_once(list_a, monkeypatch):
    """The request failure is reported by the timing wrapper only."""
    pipeline_logger = _RecordingLogger()
    timing_logger = _RecordingLogger()
    monkeypatch.setattr(pipeline_module, "logger", pipeline_logger)
    monkeypatch.setattr(metrics_module, "logger", timing_logger)

    flat = RankedList.from_pairs("flat", [("x", 1.0), ("y", 1.0)])
    with pytest.raises(DegenerateRangeError):
        fuse_ranked_lists([list_a, flat], degenerate_range_policy="error")

    assert pipeline_logger.errors == []
    assert len(timing_logger.errors) == 1
    assert timing_logger.errors[0][1]["error_type"] == "DegenerateRangeError"


def test_non_numeric_weight_is_invalid():
    ranked = RankedList("src", (RankedItem("d1", "high"),))
    with pytest.raises(InvalidInputError):
        fuse_ranked_lists([ranked])


def test_validation_happens_before_fusion(list_a):
    """A bad list later in the input still fails the whole request."""
    bad = RankedList.from_pairs("bad", [("d1", float("nan"))])
    pipeline = FusionPipeline(load_config())
    with pytest.raises(InvalidInputError):
        pipeline.run([list_a, bad])


def test_duplicate_keys_rejected_by_default():
    ranked = RankedList.from_pairs("dup", [("a", 1.0), ("b", 5.0), ("a", 3.0), ("c", 2.0)])
    with pytest.raises(InvalidInputError) as excinfo:
        fuse_ranked_lists([ranked])
    assert excinfo.value.key == "a"
    assert excinfo.value.source == "dup"


@pytest.mark.parametrize("policy, expected_a", [
    ("keep-first", 0.0),
    ("keep-last", 1.0 / 3),
    ("keep-max", 1.0 / 3),
])
def test_duplicate_key_policies(policy, expected_a):
    ranked = RankedList.from_pairs("dup", [("a", 1.0), ("b", 5.0), ("a", 3.0), ("c", 2.0)])
    result = fuse_ranked_lists([ranked], duplicate_key_policy=policy)
    weights = dict(result.to_pairs())
    assert len(result) == 3
    assert weights["a"] == pytest.approx(expected_a)
    assert weights["b"] == 1.0


def test_metrics_recorded(list_a, list_b, metrics):
    fuse_ranked_lists([list_a, list_b], metrics=metrics)

    registry = metrics.registry
    assert registry.get_sample_value(
        "rankfusion_requests_total", {"conflation": "max", "status": "success"}
    ) == 1.0
    assert registry.get_sample_value("rankfusion_input_items_total", {"source": "lexical"}) == 3.0
    assert registry.get_sample_value("rankfusion_duration_seconds_count", {"conflation": "max"}) == 1.0


def test_metrics_record_failures(list_a, metrics):
    flat = RankedList.from_pairs("flat", [("x", 1.0), ("y", 1.0)])
    pipeline = FusionPipeline(load_config(degenerate_range_policy="error"), metrics=metrics)
    with pytest.raises(DegenerateRangeError):
        pipeline.run([list_a, flat])

    registry = metrics.registry
    assert registry.get_sample_value("rankfusion_errors_total", {"error_type": "DegenerateRangeError"}) == 1.0
    assert registry.get_sample_value(
        "rankfusion_requests_total", {"conflation": "max", "status": "error"}
    ) == 1.0


def test_metrics_count_degenerate_lists(metrics):
    flat = RankedList.from_pairs("flat", [("x", 1.0), ("y", 1.0)])
    fuse_ranked_lists([flat], metrics=metrics, degenerate_range_policy="constant-zero")
    assert metrics.registry.get_sample_value(
        "rankfusion_degenerate_lists_total", {"policy": "constant-zero"}
    ) == 1.0


def test_input_lists_are_unchanged(list_a, list_b):
    before = (list_a.to_dict(), list_b.to_dict())
    fuse_ranked_lists([list_a, list_b], conflation="sum")
    assert (list_a.to_dict(), list_b.to_dict()) == before
