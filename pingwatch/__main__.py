"""Entry point for the PingWatch command-line monitor."""

import argparse
import logging
import os
import signal
import sys

from PySide6.QtCore import QCoreApplication, QEvent, QTimer

from pingwatch.command_runner import CommandRunner
from pingwatch.config import load_settings, settings_path_from_env
from pingwatch.errors import ConfigError
from pingwatch.fake_runner import FakeCommandRunner, SimulatedPing
from pingwatch.logging_config import configure_logging
from pingwatch.monitor import TargetMonitor, TargetStatus
from pingwatch.network_target import NetworkTarget

# Configure logging early
configure_logging()
logger = logging.getLogger(__name__)

RUNNER_ENV_VAR = "PINGWATCH_RUNNER"
EXIT_CONFIG_ERROR = 2


def _parse_args(argv):
    parser = argparse.ArgumentParser(
        prog="pingwatch", description="Monitor latency, jitter and packet loss of network targets."
    )
    parser.add_argument("settings", nargs="?", help="JSON settings file (default: $PINGWATCH_CONFIG)")
    parser.add_argument("--once", action="store_true", help="exit after every target reported once")
    return parser.parse_args(argv)


def _log_status(status: TargetStatus):
    logger.info(
        "%s: error=%s latency=%.2fms (peak %.2f) jitter=%.2fms (peak %.2f) "
        "loss=%.1f%% (peak %.1f) faults=%s alerting=%s",
        status.destination or "(unresolved)",
        status.error,
        status.latency_ms,
        status.peak_latency_ms,
        status.jitter_ms,
        status.peak_jitter_ms,
        status.packet_loss,
        status.peak_packet_loss,
        int(status.fault_mask),
        int(status.alerting_mask),
    )


def main(argv=None):
    """Main entry point for the PingWatch monitor."""
    args = _parse_args(argv)
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])

    path = args.settings or settings_path_from_env()
    if not path:
        logger.error("No settings file given (argument or PINGWATCH_CONFIG)")
        return EXIT_CONFIG_ERROR

    runner_factory = CommandRunner
    if os.environ.get(RUNNER_ENV_VAR, "").lower() == "fake":
        simulated = SimulatedPing()
        runner_factory = lambda parent: FakeCommandRunner(parent, responder=simulated.respond)  # noqa: E731
        logger.info("Using simulated ping results (PINGWATCH_RUNNER=fake)")

    monitor = TargetMonitor()
    try:
        return _run(app, monitor, path, runner_factory, args.once)
    finally:
        monitor.stop()
        monitor.deleteLater()
        QCoreApplication.sendPostedEvents(monitor, QEvent.Type.DeferredDelete)


def _run(app, monitor: TargetMonitor, path, runner_factory, once):
    try:
        settings = load_settings(path)
        for config in settings.targets:
            target = NetworkTarget(config, runner_factory=runner_factory, parent=monitor)
            if not monitor.add_target(target):
                target.deleteLater()
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    if not monitor.targets():
        logger.error("No ping targets configured in %s", path)
        return EXIT_CONFIG_ERROR

    monitor.status_updated.connect(_log_status)

    if once:
        _quit_when_all_done(app, monitor)

    # Let Ctrl-C terminate the event loop
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    monitor.start()
    return app.exec()


def _quit_when_all_done(app, monitor: TargetMonitor):
    """Quit once every target reported a status or ended up without a destination."""
    done = set()

    def _check():
        if len(done) == len(monitor.targets()):
            monitor.stop()
            app.quit()

    def _mark_done(target_id):
        done.add(target_id)
        _check()

    def _on_status(status: TargetStatus):
        _mark_done(status.target_id)

    def _on_resolved_for(target: NetworkTarget):
        def _on_resolved(destination):
            if not destination:
                logger.warning("No gateway found for target %s, not waiting for it", target.id[:12])
                _mark_done(target.id)

        return _on_resolved

    monitor.status_updated.connect(_on_status)
    for target in monitor.targets():
        if target.is_target_destination_pending:
            target.destination_resolved.connect(_on_resolved_for(target))
        elif not target.target_destination:
            logger.warning("Target %s has no destination, not waiting for it", target.id[:12])
            done.add(target.id)

    # quit() is ignored before exec() starts, so check again from inside the loop
    QTimer.singleShot(0, _check)


if __name__ == "__main__":
    sys.exit(main())
