"""
tests/test_aggregation_engine.py

Tests for the AggregationEngine and AggregationJob.
Verifies configuration checks, rollover gating, table reset, callback
error isolation, timer-driven rollover and teardown.
"""

from __future__ import annotations

import asyncio
import threading

import pytest

from tracewatch.backend.aggregation.engine import AggregationEngine, AggregationJob
from tracewatch.backend.aggregation.models import MetricKind, MetricSpec

METRICS = (MetricSpec("hits", MetricKind.SUM), MetricSpec("peers", MetricKind.UNIQUE))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def peers_gate(key, snapshot) -> float:
    peers = snapshot.get("peers")
    return float(peers.count) if peers is not None else 0.0


class Recorder:
    """Result function that remembers every call."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def __call__(self, ts, key, snapshot) -> None:
        self.calls.append((ts, key, snapshot))

    @property
    def keys(self) -> list:
        return [k for _, k, _ in self.calls]


def make_job(threshold: float = 1.0, result_fn=None, threshold_fn=peers_gate) -> AggregationJob:
    return AggregationJob(
        "test",
        METRICS,
        epoch_seconds=60,
        threshold_fn=threshold_fn,
        result_fn=result_fn or Recorder(),
        threshold=threshold,
    )


# ---------------------------------------------------------------------------
# configure()
# ---------------------------------------------------------------------------

class TestConfigure:

    def test_configure_registers_job(self):
        engine = AggregationEngine()
        job = engine.configure("j", METRICS, 10, peers_gate, Recorder())
        assert engine.get("j") is job
        assert job.metrics == {"hits", "peers"}

    @pytest.mark.parametrize("epoch", [0, -1, float("inf"), float("nan")])
    def test_bad_epoch_rejected(self, epoch):
        with pytest.raises(ValueError):
            AggregationEngine().configure("j", METRICS, epoch, peers_gate, Recorder())

    def test_empty_metric_set_rejected(self):
        with pytest.raises(ValueError):
            AggregationEngine().configure("j", [], 10, peers_gate, Recorder())

    @pytest.mark.parametrize("threshold", [-1, 0, 0.0, float("inf"), float("nan")])
    def test_non_positive_threshold_rejected(self, threshold):
        with pytest.raises(ValueError):
            AggregationEngine().configure(
                "j", METRICS, 10, peers_gate, Recorder(), threshold=threshold
            )

    def test_zero_gate_never_fires_at_smallest_threshold(self):
        rec = Recorder()
        job = make_job(threshold=1e-9, threshold_fn=lambda k, s: 0.0, result_fn=rec)
        job.observe("peers", "k1", "r1")
        assert job.rollover() == []
        assert rec.calls == []

    def test_duplicate_metric_names_rejected(self):
        metrics = [MetricSpec("x", MetricKind.SUM), MetricSpec("x", MetricKind.UNIQUE)]
        with pytest.raises(ValueError, match="more than once"):
            AggregationEngine().configure("j", metrics, 10, peers_gate, Recorder())

    def test_duplicate_bare_metric_names_rejected(self):
        with pytest.raises(ValueError):
            AggregationEngine().configure("j", ["x", "x"], 10, peers_gate, Recorder())

    def test_non_callable_rejected(self):
        with pytest.raises(ValueError):
            AggregationEngine().configure("j", METRICS, 10, None, Recorder())

    def test_duplicate_name_rejected(self):
        engine = AggregationEngine()
        engine.configure("j", METRICS, 10, peers_gate, Recorder())
        with pytest.raises(ValueError):
            engine.configure("j", METRICS, 10, peers_gate, Recorder())

    def test_metrics_from_generator(self):
        job = AggregationEngine().configure("j", (m for m in METRICS), 10, peers_gate, Recorder())
        job.observe("peers", "k", 5)
        job.observe("peers", "k", 5)
        assert job.rollover()[0].snapshot["peers"].count == 1

    def test_bare_metric_names_infer_kind(self):
        job = AggregationEngine().configure("j", ["peers"], 10, peers_gate, Recorder())
        job.observe("peers", "k", "a")
        assert job.rollover()[0].snapshot["peers"].kind is MetricKind.UNIQUE


# ---------------------------------------------------------------------------
# observe()
# ---------------------------------------------------------------------------

class TestObserve:

    def test_observe_counts_and_tracks_keys(self):
        job = make_job()
        job.observe("hits", "k1", 1)
        job.observe("peers", "k2", "r1")
        assert job.stats["observations"] == 2
        assert job.active_keys == 2

    def test_bad_value_dropped_without_raising(self):
        job = make_job()
        job.observe("hits", "k1", "nope")
        assert job.stats["observations_dropped"] == 1
        assert job.active_keys == 0

    def test_unknown_metric_accepted(self):
        job = make_job()
        job.observe("mystery", "k1", 3)
        assert job.active_keys == 1

    def test_engine_routes_by_declared_metric(self):
        engine = AggregationEngine()
        a = engine.configure("a", [MetricSpec("hits")], 10, peers_gate, Recorder())
        b = engine.configure("b", [MetricSpec("peers", MetricKind.UNIQUE)], 10, peers_gate, Recorder())
        engine.observe("hits", "k", 1)
        assert a.active_keys == 1
        assert b.active_keys == 0


# ---------------------------------------------------------------------------
# rollover()
# ---------------------------------------------------------------------------

class TestRollover:

    def test_crossing_key_fires_result(self):
        rec = Recorder()
        job = make_job(result_fn=rec)
        job.observe("peers", "k1", "r1")
        crossed = job.rollover(now=1000.0)
        assert [r.key for r in crossed] == ["k1"]
        assert rec.calls[0][0] == 1000.0
        assert rec.calls[0][2]["peers"].unique_values == {"r1"}

    def test_gate_equal_to_threshold_fires(self):
        rec = Recorder()
        job = make_job(threshold=2, result_fn=rec)
        job.observe("peers", "k1", "r1")
        job.observe("peers", "k1", "r2")
        job.rollover()
        assert rec.keys == ["k1"]

    def test_below_threshold_does_not_fire(self):
        rec = Recorder()
        job = make_job(threshold=2, result_fn=rec)
        job.observe("peers", "k1", "r1")
        assert job.rollover() == []
        assert rec.calls == []
        assert job.stats["keys_evaluated"] == 1

    def test_partial_key_is_still_evaluated(self):
        seen = []

        def gate(key, snapshot):
            seen.append(set(snapshot))
            return 0.0

        job = make_job(threshold_fn=gate)
        job.observe("hits", "k1", 1)
        job.rollover()
        assert seen == [{"hits"}]

    def test_rollover_empties_table(self):
        job = make_job()
        job.observe("peers", "k1", "r1")
        job.rollover()
        assert job.active_keys == 0
        assert job.rollover() == []

    def test_state_not_carried_across_epochs(self):
        rec = Recorder()
        job = make_job(threshold=2, result_fn=rec)
        job.observe("peers", "k1", "r1")
        job.rollover()
        job.observe("peers", "k1", "r2")
        job.rollover()
        assert rec.calls == []

    def test_each_key_evaluated_once(self):
        rec = Recorder()
        job = make_job(result_fn=rec)
        for key in ("k1", "k2", "k3"):
            job.observe("peers", key, "r1")
            job.observe("peers", key, "r2")
        job.rollover()
        assert sorted(rec.keys) == ["k1", "k2", "k3"]

    def test_interleaving_does_not_change_result(self):
        obs = [("hits", "k", 1), ("peers", "k", "a"), ("hits", "k", 2), ("peers", "k", "b"),
               ("peers", "k", "a")]
        results = []
        for ordering in (obs, list(reversed(obs)), obs[2:] + obs[:2]):
            job = make_job()
            for metric, key, value in ordering:
                job.observe(metric, key, value)
            snap = job.rollover()[0].snapshot
            results.append((snap["hits"].sum, snap["peers"].unique_values))
        assert results[0] == results[1] == results[2] == (3.0, frozenset({"a", "b"}))

    def test_observation_during_callback_lands_in_next_epoch(self):
        job: AggregationJob

        def result_fn(ts, key, snapshot):
            job.observe("peers", key, "late")

        job = make_job(result_fn=result_fn)
        job.observe("peers", "k1", "r1")
        crossed = job.rollover()
        assert crossed[0].snapshot["peers"].unique_values == {"r1"}
        assert job.active_keys == 1
        assert job.rollover()[0].snapshot["peers"].unique_values == {"late"}


# ---------------------------------------------------------------------------
# Error isolation
# ---------------------------------------------------------------------------

class TestCallbackErrors:

    def test_threshold_error_isolated_to_key(self):
        rec = Recorder()

        def gate(key, snapshot):
            if key == "bad":
                raise RuntimeError("boom")
            return peers_gate(key, snapshot)

        job = make_job(threshold_fn=gate, result_fn=rec)
        job.observe("peers", "bad", "r1")
        job.observe("peers", "good", "r1")
        job.rollover()
        assert rec.keys == ["good"]
        assert job.stats["callback_errors"] == 1
        assert job.active_keys == 0

    def test_result_error_does_not_block_other_keys(self):
        fired = []

        def result_fn(ts, key, snapshot):
            fired.append(key)
            if key == "bad":
                raise RuntimeError("boom")

        job = make_job(result_fn=result_fn)
        job.observe("peers", "bad", "r1")
        job.observe("peers", "good", "r1")
        crossed = job.rollover()
        assert sorted(fired) == ["bad", "good"]
        assert len(crossed) == 2
        assert job.stats["callback_errors"] == 1
        assert job.active_keys == 0

    def test_error_is_logged(self, caplog):
        def gate(key, snapshot):
            raise RuntimeError("boom")

        job = make_job(threshold_fn=gate)
        job.observe("peers", "k1", "r1")
        with caplog.at_level("ERROR"):
            job.rollover()
        assert "threshold function raised" in caplog.text


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------

class TestConcurrentProducers:

    def test_no_observation_lost_across_rollovers(self):
        totals = []

        def result_fn(ts, key, snapshot):
            totals.append(snapshot["hits"].sum)

        job = make_job(threshold_fn=lambda k, s: 1.0, result_fn=result_fn)

        def produce():
            for _ in range(500):
                job.observe("hits", "k", 1)

        threads = [threading.Thread(target=produce) for _ in range(4)]
        for t in threads:
            t.start()
        for _ in range(5):
            job.rollover()
        for t in threads:
            t.join()
        job.rollover()
        assert sum(totals) == 2000


# ---------------------------------------------------------------------------
# Timer and teardown
# ---------------------------------------------------------------------------

class TestTimer:

    @pytest.mark.asyncio
    async def test_timer_rolls_over(self):
        rec = Recorder()
        job = AggregationJob("t", METRICS, 0.05, peers_gate, rec)
        job.observe("peers", "k1", "r1")
        job.start()
        await asyncio.sleep(0.12)
        await job.stop()
        assert rec.keys == ["k1"]
        assert job.stats["rollovers"] >= 1

    @pytest.mark.asyncio
    async def test_start_twice_returns_same_task(self):
        job = AggregationJob("t", METRICS, 10, peers_gate, Recorder())
        first = job.start()
        assert job.start() is first
        await job.stop()

    @pytest.mark.asyncio
    async def test_stop_discards_table_without_firing(self):
        rec = Recorder()
        job = AggregationJob("t", METRICS, 10, peers_gate, rec)
        job.start()
        job.observe("peers", "k1", "r1")
        await job.stop()
        assert rec.calls == []
        assert not job.is_running
        assert job.active_keys == 0

    @pytest.mark.asyncio
    async def test_observe_after_stop_is_dropped(self):
        job = AggregationJob("t", METRICS, 10, peers_gate, Recorder())
        job.start()
        await job.stop()
        job.observe("peers", "k1", "r1")
        assert job.active_keys == 0
        assert job.stats["observations_dropped"] == 1

    @pytest.mark.asyncio
    async def test_start_after_stop_raises(self):
        job = AggregationJob("t", METRICS, 10, peers_gate, Recorder())
        job.start()
        await job.stop()
        with pytest.raises(RuntimeError):
            job.start()
        assert not job.is_running

    @pytest.mark.asyncio
    async def test_engine_start_stop_all_jobs(self):
        engine = AggregationEngine()
        engine.configure("a", METRICS, 10, peers_gate, Recorder())
        engine.configure("b", METRICS, 10, peers_gate, Recorder())
        tasks = engine.start()
        assert len(tasks) == 2
        assert all(job.is_running for job in engine.jobs.values())
        await engine.stop()
        assert not any(job.is_running for job in engine.jobs.values())
