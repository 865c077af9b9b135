"""Tests del motor de rollup multi-tier.

Cubre alineación de buckets, idempotencia, monotonía del cursor,
aislamiento de fallos por tier y el escenario punta a punta de 120
muestras de un minuto.

Ejecutar:
    pytest tests/test_rollup.py -v
"""

import pytest

from conftest import BASE_TS, FakeClock
from watcher_metrics.domains.multisync_ping import MultiSyncPingDomain
from watcher_metrics.rollup.aggregation import aggregate_latencies, bucket_start, percentile
from watcher_metrics.rollup.engine import RollupEngine
from watcher_metrics.rollup.tiers import (
    DEFAULT_TIERS,
    RollupTier,
    cap_retention,
    format_duration,
    format_interval,
    get_best_tier,
    validate_tiers,
)


TWO_TIERS = (
    RollupTier("1min", 60, 6 * 3600, "1-minute averages"),
    RollupTier("5min", 300, 48 * 3600, "5-minute averages"),
)


def count_aggregate(samples, start, interval):
    return {"timestamp": start, "sample_count": len(samples), "total": sum(s["v"] for s in samples)}


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def engine(tmp_path):
    return RollupEngine("test", tmp_path, count_aggregate, tiers=TWO_TIERS, clock=FakeClock())


@pytest.fixture
def hour_of_pings(data_dir, clock):
    """120 muestras de un minuto para el host "A"."""
    domain = MultiSyncPingDomain(data_dir, clock=clock)
    domain.write_samples([
        {
            "timestamp": BASE_TS + i * 60,
            "hostname": "A",
            "address": "10.0.0.2",
            "latency": float(10 + i % 5),
            "jitter": None,
            "status": "success",
        }
        for i in range(120)
    ])
    clock.now = BASE_TS + 120 * 60
    return domain


# =============================================================================
# TEST 1: TIERS Y SELECCIÓN
# =============================================================================

class TestTiers:

    def test_default_tiers_are_valid(self):
        validate_tiers(DEFAULT_TIERS)
        assert [t.name for t in DEFAULT_TIERS] == ["1min", "5min", "30min", "2hour"]
        assert DEFAULT_TIERS[2].filename == "30min.log.gz"
        assert DEFAULT_TIERS[0].filename == "1min.log"

    @pytest.mark.parametrize("hours,expected", [
        (1, "1min"),
        (6, "1min"),
        (7, "5min"),
        (48, "5min"),
        (24 * 14, "30min"),
        (24 * 90, "2hour"),
        (24 * 365, "2hour"),
    ])
    def test_best_tier_is_finest_covering_window(self, hours, expected):
        assert get_best_tier(DEFAULT_TIERS, hours).name == expected

    def test_non_increasing_tiers_rejected(self):
        with pytest.raises(ValueError):
            validate_tiers((TWO_TIERS[1], TWO_TIERS[0]))
        with pytest.raises(ValueError):
            validate_tiers(())

    def test_cap_retention_stretches_coarsest(self):
        tiers = cap_retention(DEFAULT_TIERS, 7 * 86400)

        assert [t.name for t in tiers] == ["1min", "5min", "30min"]
        assert tiers[-1].retention_seconds == 7 * 86400
        assert not any(t.compressed for t in tiers)
        validate_tiers(tiers)

    def test_cap_retention_short_window(self):
        tiers = cap_retention(DEFAULT_TIERS, 86400)

        assert [t.name for t in tiers] == ["1min", "5min"]
        assert tiers[-1].retention_seconds == 86400

    def test_labels(self):
        assert format_interval(60) == "1 minute"
        assert format_interval(1) == "1 second"
        assert format_interval(7200) == "2 hours"
        assert format_duration(6 * 3600) == "6 hours"
        assert format_duration(14 * 86400) == "14 days"
        assert format_duration(86400) == "1 day"
        assert format_duration(3600) == "1 hour"


# =============================================================================
# TEST 2: HELPERS DE AGREGACIÓN
# =============================================================================

class TestAggregationHelpers:

    def test_bucket_alignment(self):
        """125 cae en el bucket que empieza en 120, no en 60 ni 180."""
        assert bucket_start(125, 60) == 120
        assert bucket_start(120, 60) == 120
        assert bucket_start(179.9, 60) == 120

    def test_percentile_nearest_rank(self):
        values = list(range(1, 21))
        assert percentile(values, 0.95) == 19
        assert percentile([7.0], 0.95) == 7.0
        assert percentile([], 0.95) is None

    def test_aggregate_latencies(self):
        result = aggregate_latencies([12.0, 10.0, 14.0])

        assert result == {
            "latency_min": 10.0,
            "latency_max": 14.0,
            "latency_avg": 12.0,
            "latency_p95": 14.0,
        }

    def test_aggregate_latencies_empty(self):
        assert aggregate_latencies([])["latency_avg"] is None


# =============================================================================
# TEST 3: PROCESAMIENTO DE UN TIER
# =============================================================================

class TestProcessTier:

    def test_sample_lands_in_aligned_bucket(self, engine):
        engine.raw_log.append([{"timestamp": 125, "v": 1}])

        result = engine.process_tier(TWO_TIERS[0], now=180)
        records = engine.tier_log("1min").read_all()

        assert result.buckets == 1
        assert records == [{
            "timestamp": 120,
            "sample_count": 1,
            "total": 1,
            "period_start": 120,
            "period_end": 180,
        }]

    def test_incomplete_bucket_not_flushed(self, engine):
        engine.raw_log.append([{"timestamp": 125, "v": 1}])

        result = engine.process_tier(TWO_TIERS[0], now=170)

        assert result.buckets == 0
        assert not engine.tier_log("1min").exists()
        assert engine.state_store.get("1min").last_processed == 0

    def test_cursor_advances_to_bucket_end_minus_one(self, engine):
        engine.raw_log.append([{"timestamp": ts, "v": 1} for ts in (60, 125, 130, 200)])

        engine.process_tier(TWO_TIERS[0], now=185)
        cursor = engine.state_store.get("1min")

        # buckets 60 y 120 volcados; 180 sigue abierto
        assert cursor.last_bucket_end == 180
        assert cursor.last_processed == 179
        assert [r["timestamp"] for r in engine.tier_log("1min").read_all()] == [60, 120]

    def test_cursor_never_decreases(self, engine):
        engine.raw_log.append([{"timestamp": ts, "v": 1} for ts in (60, 125)])
        engine.process_tier(TWO_TIERS[0], now=300)
        first = engine.state_store.get("1min").last_processed

        engine.raw_log.append([{"timestamp": 61, "v": 1}])
        engine.process_tier(TWO_TIERS[0], now=100)

        assert engine.state_store.get("1min").last_processed >= first

    def test_late_sample_for_flushed_bucket_ignored(self, engine):
        engine.raw_log.append([{"timestamp": 125, "v": 1}])
        engine.process_tier(TWO_TIERS[0], now=180)

        engine.raw_log.append([{"timestamp": 179, "v": 5}])
        result = engine.process_tier(TWO_TIERS[0], now=240)

        assert result.buckets == 0
        assert engine.tier_log("1min").read_all()[0]["total"] == 1

    def test_aggregate_returning_none_still_advances(self, tmp_path):
        engine = RollupEngine("test", tmp_path, lambda s, b, i: None, tiers=TWO_TIERS)
        engine.raw_log.append([{"timestamp": 125}])

        result = engine.process_tier(TWO_TIERS[0], now=180)

        assert result.buckets == 1
        assert result.records == 0
        assert engine.state_store.get("1min").last_bucket_end == 180


# =============================================================================
# TEST 4: IDEMPOTENCIA Y FALLOS
# =============================================================================

class TestIdempotencyAndFailures:

    def test_rerun_produces_no_duplicates(self, engine):
        engine.raw_log.append([{"timestamp": BASE_TS + i * 60, "v": 1} for i in range(10)])
        now = BASE_TS + 600

        engine.process_all(now=now)
        engine.process_all(now=now)

        assert len(engine.tier_log("1min").read_all()) == 10
        assert len(engine.tier_log("5min").read_all()) == 2

    def test_lost_cursor_rerun_upserts(self, engine):
        """Crash después de escribir y antes de guardar el cursor: el re-run no duplica."""
        engine.raw_log.append([{"timestamp": BASE_TS + i * 60, "v": 1} for i in range(10)])
        now = BASE_TS + 600
        engine.process_all(now=now)

        engine.state_store.path.unlink()
        engine.process_all(now=now)

        assert len(engine.tier_log("1min").read_all()) == 10
        assert len(engine.tier_log("5min").read_all()) == 2

    def test_failing_tier_does_not_block_others(self, tmp_path):
        def flaky(samples, start, interval):
            if interval == 60:
                raise RuntimeError("boom")
            return count_aggregate(samples, start, interval)

        engine = RollupEngine("test", tmp_path, flaky, tiers=TWO_TIERS)
        engine.raw_log.append([{"timestamp": BASE_TS + i * 60, "v": 1} for i in range(10)])

        results = engine.process_all(now=BASE_TS + 600)

        assert results["1min"].error == "boom"
        assert results["5min"].error is None
        assert results["5min"].records == 2
        assert engine.state_store.get("1min").last_processed == 0

    def test_raw_retention_shorter_than_coarsest_interval(self, engine):
        with pytest.raises(ValueError):
            engine.prune_raw(120)

    def test_domain_rejects_short_raw_retention(self, data_dir):
        with pytest.raises(ValueError):
            MultiSyncPingDomain(data_dir, raw_retention_seconds=3600)

    def test_tier_prune_uses_tier_retention(self, engine):
        old = BASE_TS - 7 * 3600
        engine.raw_log.append([{"timestamp": old, "v": 1}, {"timestamp": BASE_TS, "v": 1}])

        engine.process_tier(TWO_TIERS[0], now=BASE_TS + 60)

        assert [r["timestamp"] for r in engine.tier_log("1min").read_all()] == [BASE_TS]


# =============================================================================
# TEST 5: ESCENARIO PUNTA A PUNTA
# =============================================================================

class TestEndToEnd:

    def test_one_minute_tier_is_one_to_one(self, hour_of_pings):
        hour_of_pings.run_rollups()

        records = hour_of_pings.engine.tier_log("1min").read_all()

        assert len(records) == 120
        assert all(r["sample_count"] == 1 for r in records)
        assert all(r["hostname"] == "A" for r in records)

    def test_five_minute_tier_averages_five_samples(self, hour_of_pings):
        hour_of_pings.run_rollups()

        records = hour_of_pings.engine.tier_log("5min").read_all()

        assert len(records) == 24
        assert all(r["sample_count"] == 5 for r in records)
        # latencias 10..14 en cada bucket de 5 minutos
        assert all(r["avg_latency"] == 12.0 for r in records)
        assert all(r["min_latency"] == 10.0 and r["max_latency"] == 14.0 for r in records)

    def test_get_metrics_selects_tier(self, hour_of_pings):
        hour_of_pings.run_rollups()

        result = hour_of_pings.get_metrics(hours_back=2, host="A")

        assert result["success"] is True
        assert result["tier_info"]["tier"] == "1min"
        assert result["count"] == 120

    def test_get_metrics_falls_back_to_finer_tier(self, hour_of_pings):
        hour_of_pings.engine.process_tier(hour_of_pings.engine.get_tier("1min"))

        result = hour_of_pings.get_metrics(hours_back=24)

        assert result["tier_info"]["tier"] == "1min"

    def test_tiers_info(self, hour_of_pings):
        hour_of_pings.run_rollups()

        info = hour_of_pings.get_rollup_tiers_info()

        assert info["1min"]["file_exists"] is True
        assert info["1min"]["interval_label"] == "1 minute"
        assert info["30min"]["compressed"] is True

    def test_missing_tier_file(self, hour_of_pings):
        result = hour_of_pings.engine.read_tier("5min")

        assert result == {"success": False, "error": "Rollup file not found", "data": []}
