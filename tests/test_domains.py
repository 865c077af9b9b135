"""Tests de los dominios de métricas.

Ejecutar:
    pytest tests/test_domains.py -v
"""

from unittest.mock import AsyncMock, patch

import pytest

from conftest import BASE_TS
from watcher_metrics.domains.base import MetricDomain
from watcher_metrics.domains.efuse import TOTAL_PORT, EfuseDomain
from watcher_metrics.domains.multisync_ping import MultiSyncPingDomain
from watcher_metrics.domains.network_quality import NetworkQualityDomain, aggregate_hosts
from watcher_metrics.domains.ping import PingDomain
from watcher_metrics.domains.voltage import VoltageDomain, voltage_tiers
from watcher_metrics.fleet.fpp_api import SEQUENCE_META_PATH, FppApi
from watcher_metrics.fleet.models import RemoteSystem
from watcher_metrics.storage.timeseries_log import TimeSeriesWriteError


def quality_sample(ts, latency, packets, hostname="remote-1", playing=True, step_time=50):
    return {
        "timestamp": ts,
        "hostname": hostname,
        "address": "10.0.0.2",
        "latency": latency,
        "jitter": None,
        "player_packets_sent": None,
        "packets_received": packets,
        "is_playing": playing,
        "step_time": step_time,
        "plugin_installed": True,
    }


def comparison_result(remotes, playing=True, sequence="show.fseq"):
    return {
        "success": True,
        "player": {
            "metrics": {"totalPacketsSent": 500},
            "fppStatus": {"status": "playing" if playing else "idle", "sequence": sequence},
        },
        "remotes": remotes,
    }


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def quality(data_dir, clock) -> NetworkQualityDomain:
    clock.now = BASE_TS + 3600
    return NetworkQualityDomain(data_dir, clock=clock)


@pytest.fixture
def efuse(data_dir, clock) -> EfuseDomain:
    return EfuseDomain(data_dir, retention_days=7, clock=clock)


# =============================================================================
# TEST 1: BASE DE DOMINIOS
# =============================================================================

class TestMetricDomainBase:

    def test_domains_use_isolated_directories(self, data_dir, clock):
        ping = PingDomain(data_dir, clock=clock)
        quality = NetworkQualityDomain(data_dir, clock=clock)

        assert ping.raw_log.path == data_dir / "ping" / "raw.log"
        assert quality.raw_log.path == data_dir / "network-quality" / "raw.log"
        assert ping.engine.state_store.path != quality.engine.state_store.path

    def test_domain_requires_name(self, data_dir):
        class Nameless(MetricDomain):
            pass

        with pytest.raises(ValueError):
            Nameless(data_dir)

    def test_write_failure_drops_samples(self, data_dir, clock):
        domain = PingDomain(data_dir, clock=clock)

        with patch.object(domain.raw_log, "append", side_effect=TimeSeriesWriteError("disk full")):
            written = domain.write_samples([{"timestamp": BASE_TS}])

        assert written == 0

    def test_raw_metrics_filtered_by_host(self, data_dir, clock):
        domain = PingDomain(data_dir, clock=clock)
        domain.write_samples([
            {"timestamp": BASE_TS - 10, "host": "8.8.8.8", "latency": 10.0},
            {"timestamp": BASE_TS - 5, "host": "1.1.1.1", "latency": 20.0},
        ])

        result = domain.get_raw_metrics(hours_back=1, host="1.1.1.1")

        assert [s["latency"] for s in result] == [20.0]


# =============================================================================
# TEST 2: PING ICMP
# =============================================================================

class TestPingDomain:

    def test_aggregate_single_record(self, data_dir, clock):
        domain = PingDomain(data_dir, clock=clock)
        samples = [
            {"timestamp": 60, "host": "8.8.8.8", "latency": 10.0, "status": "success"},
            {"timestamp": 70, "host": "8.8.8.8", "latency": 20.0, "status": "success"},
            {"timestamp": 80, "host": "8.8.8.8", "latency": None, "status": "failure"},
        ]

        record = domain.aggregate(samples, 60, 60)

        assert record["avg_latency"] == 15.0
        assert record["min_latency"] == 10.0
        assert record["max_latency"] == 20.0
        assert record["sample_count"] == 3
        assert record["success_count"] == 2
        assert record["failure_count"] == 1
        assert record["hosts"] == {"8.8.8.8": 3}

    @pytest.mark.asyncio
    async def test_collect_writes_sample(self, data_dir, clock):
        domain = PingDomain(data_dir, clock=clock)

        with patch("watcher_metrics.domains.ping.ping_host", AsyncMock(return_value=12.5)):
            sample = await domain.collect("8.8.8.8")

        assert sample["status"] == "success"
        assert domain.raw_log.read_all() == [sample]

    @pytest.mark.asyncio
    async def test_collect_failure(self, data_dir, clock):
        domain = PingDomain(data_dir, clock=clock)

        with patch("watcher_metrics.domains.ping.ping_host", AsyncMock(return_value=None)):
            sample = await domain.collect("10.255.255.1")

        assert sample["latency"] is None
        assert sample["status"] == "failure"


# =============================================================================
# TEST 3: MULTISYNC PING
# =============================================================================

class TestMultiSyncPing:

    @pytest.mark.asyncio
    async def test_collect_pings_each_remote(self, data_dir, clock):
        latencies = {"10.0.0.2": 4.2, "10.0.0.3": None}

        async def fake_ping(address, timeout=2.0, interface=None):
            return latencies[address]

        domain = MultiSyncPingDomain(data_dir, clock=clock)
        remotes = [RemoteSystem("up", "10.0.0.2", "remote"), RemoteSystem("down", "10.0.0.3", "remote")]

        with patch("watcher_metrics.domains.multisync_ping.ping_host", AsyncMock(side_effect=fake_ping)):
            first = await domain.collect(remotes)
            latencies["10.0.0.2"] = 6.2
            second = await domain.collect(remotes)

        by_host = {s["hostname"]: s for s in second}
        assert first[0]["jitter"] is None
        assert by_host["up"]["status"] == "success"
        assert by_host["up"]["latency"] == 6.2
        assert by_host["up"]["jitter"] is not None
        assert by_host["down"]["status"] == "failure"
        assert by_host["down"]["latency"] is None
        assert len(domain.raw_log.read_all()) == 4

    @pytest.mark.asyncio
    async def test_collect_forwards_timeout_and_interface(self, data_dir, clock):
        domain = MultiSyncPingDomain(data_dir, clock=clock)
        ping = AsyncMock(return_value=1.0)

        with patch("watcher_metrics.domains.multisync_ping.ping_host", ping):
            await domain.collect([RemoteSystem("r1", "10.0.0.2", "remote")], timeout=0.5, interface="eth1")

        ping.assert_awaited_once_with("10.0.0.2", timeout=0.5, interface="eth1")

    @pytest.mark.asyncio
    async def test_collect_without_remotes_writes_nothing(self, data_dir, clock):
        domain = MultiSyncPingDomain(data_dir, clock=clock)

        assert await domain.collect([]) == []
        assert not domain.raw_log.exists()

    def test_aggregate_per_host(self, data_dir, clock):
        domain = MultiSyncPingDomain(data_dir, clock=clock)
        samples = [
            {"timestamp": 60, "hostname": "a", "latency": 10.0, "jitter": 1.0, "status": "success"},
            {"timestamp": 61, "hostname": "b", "latency": None, "jitter": None, "status": "failure"},
            {"timestamp": 62, "hostname": "a", "latency": 20.0, "jitter": 3.0, "status": "success"},
        ]

        records = {r["hostname"]: r for r in domain.aggregate(samples, 60, 60)}

        assert records["a"]["avg_latency"] == 15.0
        assert records["a"]["avg_jitter"] == 2.0
        assert records["a"]["max_jitter"] == 3.0
        assert records["b"]["failure_count"] == 1
        assert records["b"]["avg_latency"] is None


# =============================================================================
# TEST 4: CALIDAD DE RED
# =============================================================================

class TestNetworkQuality:

    def test_status_without_data_is_unknown(self, quality):
        status = quality.get_status()

        assert status["hosts"] == []
        assert status["summary"]["overallQuality"] == "unknown"
        assert status["summary"]["avgPacketLoss"] is None

    def test_status_healthy_host(self, quality, clock):
        now = clock.now
        quality.write_samples([
            quality_sample(now - 300 + i * 60, latency, i * 120)
            for i, latency in enumerate([20.0, 22.0, 20.0, 22.0])
        ])

        status = quality.get_status()
        host = status["hosts"][0]

        assert host["latency_avg"] == 21.0
        assert host["latency_quality"] == "good"
        assert host["packet_loss_pct"] == 0.0
        assert host["receive_rate"] == 2.0
        assert host["overall_quality"] == "good"
        assert status["summary"]["overallQuality"] == "good"

    def test_status_degraded_by_packet_loss(self, quality, clock):
        now = clock.now
        quality.write_samples([
            quality_sample(now - 300 + i * 60, 20.0, i * 60) for i in range(4)
        ])

        host = quality.get_status()["hosts"][0]

        assert host["packet_loss_pct"] == 50.0
        assert host["packet_loss_quality"] == "critical"
        assert host["overall_quality"] == "critical"

    def test_idle_player_has_no_loss_data(self, quality, clock):
        now = clock.now
        quality.write_samples([
            quality_sample(now - 300 + i * 60, 20.0, 0, playing=False) for i in range(4)
        ])

        host = quality.get_status()["hosts"][0]

        assert host["packet_loss_pct"] is None
        assert host["packet_loss_quality"] is None
        assert host["overall_quality"] == "good"

    def test_status_ignores_samples_older_than_an_hour(self, quality, clock):
        quality.write_samples([quality_sample(clock.now - 7200, 900.0, 0)])

        assert quality.get_status()["summary"]["overallQuality"] == "unknown"

    def test_aggregate_recomputes_jitter_from_sorted_latencies(self):
        samples = [
            quality_sample(120, 10.0, 0),
            quality_sample(60, 26.0, 0),
            quality_sample(0, 10.0, 0),
        ]

        record = aggregate_hosts(samples)[0]

        assert record["jitter_max"] == round(1 + 15 / 16, 2)

    @pytest.mark.asyncio
    async def test_collect_from_comparison(self, quality):
        comparison = comparison_result([
            {"hostname": "r1", "address": "10.0.0.2", "online": True, "responseTime": 12.0,
             "pluginInstalled": True, "metrics": {"totalPacketsReceived": 480}},
            {"hostname": "r2", "address": "10.0.0.3", "online": False, "responseTime": None},
        ], playing=False)

        samples = await quality.collect(comparison)

        assert len(samples) == 1
        assert samples[0]["hostname"] == "r1"
        assert samples[0]["latency"] == 12.0
        assert samples[0]["jitter"] is None
        assert samples[0]["packets_received"] == 480
        assert samples[0]["player_packets_sent"] == 500
        assert samples[0]["latency_quality"] == "good"
        assert quality.raw_log.read_all() == samples

    @pytest.mark.asyncio
    async def test_collect_looks_up_step_time_once(self, fleet, quality):
        meta_path = SEQUENCE_META_PATH.format(name="show.fseq")
        fleet.json("fpp.local", meta_path, {"StepTime": 25})
        api = FppApi(fleet.client(), "http://fpp.local")
        comparison = comparison_result([
            {"hostname": "r1", "address": "10.0.0.2", "online": True, "responseTime": 12.0,
             "metrics": {"totalPacketsReceived": 1}},
        ])

        first = await quality.collect(comparison, api)
        await quality.collect(comparison, api)

        assert first[0]["step_time"] == 25
        assert first[0]["is_playing"] is True
        assert len([r for r in fleet.requests if r.url.path == meta_path]) == 1

    @pytest.mark.asyncio
    async def test_stale_snapshot_not_sampled(self, quality):
        """Un remoto mostrado desde el snapshot en caché no genera muestra."""
        fresh = {"hostname": "r1", "address": "10.0.0.2", "online": True, "responseTime": 12.0}
        stale = dict(fresh, staleSinceFailure=1)

        await quality.collect(comparison_result([fresh], playing=False))
        samples = await quality.collect(comparison_result([stale], playing=False))

        assert samples == []
        assert len(quality.raw_log.read_all()) == 1

    @pytest.mark.asyncio
    async def test_failed_comparison_writes_nothing(self, quality):
        assert await quality.collect({"success": False}) == []
        assert not quality.raw_log.exists()

    def test_history_from_raw(self, quality, clock):
        now = clock.now
        quality.write_samples([
            quality_sample(now - 180, 20.0, 0),
            quality_sample(now - 120, 30.0, 60),
        ])

        history = quality.get_history(hours_back=1)

        assert history["tier_info"]["tier"] == "raw"
        assert history["chartData"]["latency"] == [20.0, 30.0]
        assert history["chartData"]["packetLoss"] == [None, 50.0]

    def test_history_from_tiers(self, quality, clock):
        start = clock.now - 3600
        quality.write_samples([quality_sample(start + i * 60, 20.0, i * 120) for i in range(30)])
        quality.run_rollups()

        history = quality.get_history(hours_back=24)

        assert history["success"] is True
        assert history["tier_info"]["tier"] == "5min"
        assert len(history["chartData"]["labels"]) == 6
        assert history["chartData"]["latency"][0] == 20.0


# =============================================================================
# TEST 5: EFUSE (TIERS EN CASCADA)
# =============================================================================

class TestEfuse:

    @pytest.fixture
    def readings(self, efuse, clock):
        """20 lecturas cada 30s: p1 = 100 + 2i mA, p2 = 50 mA."""
        for i in range(20):
            clock.now = BASE_TS + i * 30
            efuse.write_reading({"p1": 100 + 2 * i, "p2": 50})
        clock.now = BASE_TS + 1800
        return efuse

    def test_tiers_capped_to_retention(self, efuse):
        names = [t.name for t in efuse.engine.tiers]

        assert names == ["1min", "5min", "30min"]
        assert efuse.engine.tiers[-1].retention_seconds == 7 * 86400

    def test_total_port_added(self, efuse):
        efuse.write_reading({"p1": 100, "p2": 50})

        assert efuse.raw_log.read_all()[0]["ports"][TOTAL_PORT] == 150

    def test_empty_reading_ignored(self, efuse):
        assert efuse.write_reading({}) == 0

    def test_cascade_aggregates_previous_tier(self, readings):
        readings.run_rollups()
        one = readings.engine.tier_log("1min").read_all()
        five = readings.engine.tier_log("5min").read_all()
        thirty = readings.engine.tier_log("30min").read_all()

        assert len(one) == 10
        assert one[0]["sample_count"] == 2
        assert one[0]["ports"]["p1"] == {"avg": 101, "min": 100, "max": 102, "peak": 102, "samples": 2}

        assert len(five) == 2
        assert five[0]["sample_count"] == 10
        assert five[0]["ports"]["p1"] == {"avg": 109, "min": 100, "max": 118, "peak": 118, "samples": 10}

        assert len(thirty) == 1
        assert thirty[0]["sample_count"] == 20
        assert thirty[0]["ports"]["p1"]["avg"] == 119
        assert thirty[0]["ports"]["p1"]["max"] == 138
        assert thirty[0]["ports"]["p1"]["samples"] == 20
        assert thirty[0]["ports"][TOTAL_PORT]["min"] == 150

    def test_higher_tiers_read_previous_tier(self, efuse):
        five = efuse.engine.get_tier("5min")

        assert efuse.engine.source_log(five) is efuse.engine.tier_log("1min")
        assert efuse.engine.source_log(efuse.engine.tiers[0]) is efuse.raw_log

    def test_port_history(self, readings):
        readings.run_rollups()

        history = readings.get_port_history("p2", hours_back=1)

        assert history["success"] is True
        assert history["tier_info"]["tier"] == "1min"
        assert len(history["data"]) == 10
        assert all(p["avg"] == 50 for p in history["data"])


# =============================================================================
# TEST 6: VOLTAJE POR RIEL
# =============================================================================

class TestVoltage:

    @pytest.fixture
    def voltage(self, data_dir, clock) -> VoltageDomain:
        return VoltageDomain(data_dir, retention_days=4, clock=clock)

    @pytest.fixture
    def readings(self, voltage, clock):
        """20 lecturas cada 30s: core = 1.00 + i/100 V, sdram = 1.5 V."""
        for i in range(20):
            clock.now = BASE_TS + i * 30
            voltage.write_reading({"core": 1.0 + i / 100, "sdram": 1.5})
        clock.now = BASE_TS + 1800
        return voltage

    @pytest.mark.parametrize("days, names, last_retention", [
        (1, ["1min"], 6 * 3600),
        (2, ["1min", "5min"], 48 * 3600),
        (4, ["1min", "5min", "30min"], 4 * 86400),
        (8, ["1min", "5min", "30min", "2hour"], 8 * 86400),
    ])
    def test_tiers_depend_on_retention(self, days, names, last_retention):
        tiers = voltage_tiers(days)

        assert [t.name for t in tiers] == names
        assert tiers[-1].retention_seconds == last_retention

    def test_retention_below_one_day_rejected(self):
        with pytest.raises(ValueError):
            voltage_tiers(0)

    def test_empty_reading_ignored(self, voltage):
        assert voltage.write_reading({}) == 0
        assert not voltage.raw_log.exists()

    def test_aggregate_accepts_legacy_single_voltage(self, voltage):
        samples = [
            {"timestamp": BASE_TS, "voltage": 5.1},
            {"timestamp": BASE_TS + 30, "voltages": {"core": 4.9, "io": 3.3}},
        ]

        record = voltage.aggregate(samples, BASE_TS, 60)

        assert record["sample_count"] == 2
        assert record["voltages"]["core"] == {"avg": 5.0, "min": 4.9, "max": 5.1, "samples": 2}
        assert record["voltages"]["io"]["samples"] == 1

    def test_aggregate_without_rails_is_none(self, voltage):
        assert voltage.aggregate([{"timestamp": BASE_TS}], BASE_TS, 60) is None

    def test_cascade_keeps_extremes_and_raw_counts(self, readings):
        readings.run_rollups()
        one = readings.engine.tier_log("1min").read_all()
        five = readings.engine.tier_log("5min").read_all()
        thirty = readings.engine.tier_log("30min").read_all()

        assert len(one) == 10
        assert one[0]["voltages"]["core"]["avg"] == pytest.approx(1.005)
        assert one[0]["sample_count"] == 2

        assert five[0]["sample_count"] == 10
        assert five[0]["voltages"]["core"]["min"] == pytest.approx(1.0)
        assert five[0]["voltages"]["core"]["max"] == pytest.approx(1.09)

        assert len(thirty) == 1
        assert thirty[0]["sample_count"] == 20
        assert thirty[0]["voltages"]["core"]["avg"] == pytest.approx(1.095)
        assert thirty[0]["voltages"]["core"]["max"] == pytest.approx(1.19)
        assert thirty[0]["voltages"]["sdram"] == {"avg": 1.5, "min": 1.5, "max": 1.5, "samples": 20}

    def test_short_window_served_from_raw(self, readings):
        result = readings.get_metrics(hours_back=1)

        assert result["tier_info"]["tier"] == "raw"
        assert result["count"] == 20
        assert result["data"][0]["voltages"] == {"core": 1.0, "sdram": 1.5}

    def test_long_window_served_from_tiers(self, readings):
        readings.run_rollups()

        result = readings.get_metrics(hours_back=24)

        assert result["tier_info"]["tier"] == "5min"
        assert result["success"] is True

    def test_current_status_reports_latest_reading(self, readings, clock):
        clock.now = BASE_TS + 600

        status = readings.get_current_status()

        assert status["success"] is True
        assert status["timestamp"] == BASE_TS + 19 * 30
        assert status["voltage"] == pytest.approx(1.19)
        assert status["rails"] == ["core", "sdram"]

    def test_current_status_without_recent_readings(self, readings, clock):
        clock.advance(3600)

        assert readings.get_current_status() == {'success': False, 'error': 'No recent voltage readings'}
