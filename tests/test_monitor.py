"""Tests for fault evaluation, peak tracking and the target monitor."""

import pytest

from pingwatch.fake_runner import FakeCommandRunner
from pingwatch.gateway import Platform
from pingwatch.models import AlertMask, DataBufferType, PeakType, ProbeResult, TargetConfig
from pingwatch.monitor import FaultStatus, PeakTracker, TargetMonitor, evaluate_faults
from pingwatch.network_target import NetworkTarget

PING_OUTPUT = """PING 1.1.1.1 (1.1.1.1) 56(84) bytes of data.
64 bytes from 1.1.1.1: icmp_seq=1 ttl=57 time=12.3 ms
64 bytes from 1.1.1.1: icmp_seq=2 ttl=57 time=15.1 ms
64 bytes from 1.1.1.1: icmp_seq=3 ttl=57 time=9.8 ms
"""

LINUX_ROUTE = """Kernel IP routing table
Destination     Gateway         Genmask         Flags Metric Ref    Use Iface
0.0.0.0         10.0.0.1        0.0.0.0         UG    100    0        0 eth0
"""


def respond(command, arguments):
    if command == "route":
        return True, LINUX_ROUTE
    return True, PING_OUTPUT


def fake_factory(parent):
    return FakeCommandRunner(parent, responder=respond)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def always_filled_target(parent, **overrides):
    """Target whose 200s period exceeds the 180s window, so buffers count as filled."""
    values = {"target_type": "ipv4", "target_dest": "1.1.1.1", "ping_period": 200}
    values.update(overrides)
    return NetworkTarget(TargetConfig(**values), runner_factory=fake_factory, parent=parent)


def probe(target, error=False, loss=0.0, latency=5.0, jitter=0.5):
    return ProbeResult(
        sender=target, error=error, packet_loss=loss, ping_latency_ms=latency, ping_jitter=jitter
    )


class TestFaultStatus:
    def test_mask(self):
        assert FaultStatus().mask == AlertMask.NONE
        assert FaultStatus(latency=True, loss=True).mask == AlertMask.LATENCY | AlertMask.LOSS
        assert FaultStatus(True, True, True).mask == AlertMask.ALL


class TestEvaluateFaults:
    """Test fault decisions against the target's expectations."""

    def test_healthy(self, qowner):
        target = always_filled_target(qowner)
        assert evaluate_faults(probe(target)).mask == AlertMask.NONE

    def test_error_faults_everything(self, qowner):
        target = always_filled_target(qowner)
        assert evaluate_faults(probe(target, error=True)).mask == AlertMask.ALL

    def test_latency_allows_jitter_margin(self, qowner):
        """Test latency faults only above expected latency plus three jitters."""
        target = always_filled_target(qowner, expected_latency=10, expected_jitter=1)

        assert not evaluate_faults(probe(target, latency=13.0)).latency
        assert evaluate_faults(probe(target, latency=13.1)).latency

    def test_jitter(self, qowner):
        target = always_filled_target(qowner, expected_jitter=2)

        assert not evaluate_faults(probe(target, jitter=2.0)).jitter
        assert evaluate_faults(probe(target, jitter=2.5)).jitter

    def test_loss(self, qowner):
        target = always_filled_target(qowner, loss_limit=10)

        assert not evaluate_faults(probe(target, loss=10.0)).loss
        assert evaluate_faults(probe(target, loss=20.0)).loss

    def test_unfilled_buffers_do_not_fault(self, qowner):
        """Test a freshly started target does not fault on high values."""
        target = NetworkTarget(
            TargetConfig(target_type="ipv4", target_dest="1.1.1.1"),
            runner_factory=fake_factory,
            parent=qowner,
        )

        faults = evaluate_faults(probe(target, loss=90.0, latency=500.0, jitter=50.0))

        assert faults.mask == AlertMask.NONE


class TestPeakTracker:
    """Test peak replacement rules."""

    def test_first_level_is_peak(self, qowner):
        tracker = PeakTracker()
        target = always_filled_target(qowner)

        assert tracker.get(PeakType.LATENCY) is None
        assert tracker.update(target, PeakType.LATENCY, 12.0) == 12.0

    def test_higher_level_replaces(self, qowner):
        tracker = PeakTracker()
        target = always_filled_target(qowner)

        tracker.update(target, PeakType.LATENCY, 12.0)
        assert tracker.update(target, PeakType.LATENCY, 8.0) == 12.0
        assert tracker.update(target, PeakType.LATENCY, 20.0) == 20.0

    def test_expired_peak_replaced_by_lower(self, qowner):
        clock = FakeClock()
        target = NetworkTarget(
            TargetConfig(target_type="ipv4", target_dest="1.1.1.1", peak_expiration=1),
            runner_factory=fake_factory,
            clock=clock,
            parent=qowner,
        )
        tracker = PeakTracker()

        tracker.update(target, PeakType.LOSS, 40.0)
        clock.now += 3601
        assert tracker.update(target, PeakType.LOSS, 5.0) == 5.0
        assert not target.is_peak_expired(PeakType.LOSS)

    def test_clear(self, qowner):
        tracker = PeakTracker()
        tracker.update(always_filled_target(qowner), PeakType.JITTER, 1.0)
        tracker.clear()
        assert tracker.get(PeakType.JITTER) is None


class TestTargetMonitor:
    """Test registration and status reporting."""

    def test_duplicate_target_ignored(self, qowner):
        monitor = TargetMonitor(qowner)
        first = always_filled_target(qowner)
        second = always_filled_target(qowner, loss_limit=20)

        assert monitor.add_target(first)
        assert not monitor.add_target(second)
        assert monitor.targets() == [first]
        assert monitor.get_target(first.id) is first

    def test_remove_target(self, qowner):
        monitor = TargetMonitor(qowner)
        target = always_filled_target(qowner)
        monitor.add_target(target)

        monitor.remove_target(target.id)
        monitor.remove_target(target.id)

        assert monitor.targets() == []
        assert monitor.get_target(target.id) is None

    def test_status_reported(self, qowner, wait_until):
        """Test a probe round becomes a status with filtered values and peaks."""
        monitor = TargetMonitor(qowner)
        target = NetworkTarget(
            TargetConfig(target_type="ipv4", target_dest="1.1.1.1", expected_latency=5),
            runner_factory=fake_factory,
            parent=qowner,
        )
        monitor.add_target(target)
        statuses = []
        monitor.status_updated.connect(statuses.append)

        monitor.start()
        assert wait_until(lambda: statuses)
        monitor.stop()

        status = statuses[0]
        assert status.target_id == target.id
        assert status.destination == "1.1.1.1"
        assert not status.error
        assert status.latency_ms == pytest.approx(12.4)
        assert status.jitter_ms == pytest.approx(4.05)
        assert status.peak_latency_ms == pytest.approx(12.4)
        assert status.peak_jitter_ms == pytest.approx(4.05)
        assert status.packet_loss == 0.0
        # One round does not fill a nine-round buffer.
        assert status.fault_mask == AlertMask.NONE
        assert status.alerting_mask == AlertMask.NONE
        assert monitor.get_stats()["rounds"] == 1
        assert not monitor.is_monitoring

    def test_failed_round_status(self, qowner, wait_until):
        """Test a failed round faults every metric and alerts on the enabled ones."""

        def unreachable(command, arguments):
            return False, "ping: unknown host 1.1.1.1"

        monitor = TargetMonitor(qowner)
        target = NetworkTarget(
            TargetConfig(target_type="ipv4", target_dest="1.1.1.1", alert_mask=AlertMask.JITTER),
            runner_factory=lambda parent: FakeCommandRunner(parent, responder=unreachable),
            parent=qowner,
        )
        monitor.add_target(target)
        statuses = []
        monitor.status_updated.connect(statuses.append)

        monitor.start()
        assert wait_until(lambda: statuses)
        monitor.stop()

        status = statuses[0]
        assert status.error
        assert status.latency_ms == 0.0
        assert status.packet_loss == 0.0
        assert status.fault_mask == AlertMask.ALL
        assert status.alerting_mask == AlertMask.JITTER
        assert monitor.get_stats()["error_rounds"] == 1

    def test_zero_capacity_status(self, qowner, wait_until):
        """Test a target keeping no values reports zeros without faulting."""
        monitor = TargetMonitor(qowner)
        target = always_filled_target(qowner, expected_latency=5)
        monitor.add_target(target)
        statuses = []
        monitor.status_updated.connect(statuses.append)

        monitor.start()
        assert wait_until(lambda: statuses)
        monitor.stop()

        status = statuses[0]
        assert not status.error
        assert status.latency_ms == 0.0
        assert status.jitter_ms == 0.0
        assert status.packet_loss == 0.0
        assert status.fault_mask == AlertMask.NONE
        assert target.is_buffer_filled(DataBufferType.LATENCY)

    def test_pending_gateway_started_after_discovery(self, qowner, wait_until):
        monitor = TargetMonitor(qowner)
        target = NetworkTarget(
            {"target_type": "gateway"},
            runner_factory=fake_factory,
            platform=Platform.LINUX,
            parent=qowner,
        )
        monitor.add_target(target)
        statuses = []
        monitor.status_updated.connect(statuses.append)

        monitor.start()
        assert monitor.get_stats()["awaiting_destination"] == 1

        assert wait_until(lambda: statuses)
        monitor.stop()
        assert statuses[0].destination == "10.0.0.1"
        assert monitor.get_stats()["awaiting_destination"] == 0

    def test_target_added_while_monitoring(self, qowner, wait_until):
        monitor = TargetMonitor(qowner)
        statuses = []
        monitor.status_updated.connect(statuses.append)
        monitor.start()

        monitor.add_target(always_filled_target(qowner))

        assert wait_until(lambda: statuses)
        monitor.stop()
