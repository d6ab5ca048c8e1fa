"""Shared fixtures for PingWatch tests."""

import time

import pytest
from PySide6.QtCore import QCoreApplication, QEvent, QEventLoop, QObject


@pytest.fixture(scope="session")
def qapp():
    """Create the QCoreApplication instance for tests."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture
def wait_until(qapp):
    """Spin the Qt event loop until a condition holds.

    Returns a function ``wait(predicate, timeout_ms=5000) -> bool``.
    """

    def _wait(predicate, timeout_ms=5000):
        deadline = time.monotonic() + timeout_ms / 1000.0
        while not predicate():
            if time.monotonic() > deadline:
                return False
            QCoreApplication.processEvents(QEventLoop.ProcessEventsFlag.AllEvents, 50)
            time.sleep(0.005)
        return True

    return _wait


@pytest.fixture
def process_events(qapp):
    """Run pending Qt events for a short while."""

    def _process(duration_ms=50):
        deadline = time.monotonic() + duration_ms / 1000.0
        while time.monotonic() < deadline:
            QCoreApplication.processEvents(QEventLoop.ProcessEventsFlag.AllEvents, 10)
            time.sleep(0.002)

    return _process


@pytest.fixture
def qowner(qapp):
    """Parent for the QObjects a test creates, destroyed at teardown.

    Parenting targets, runners and monitors here deletes them (and their
    timers and processes) before the next test instead of whenever the
    garbage collector runs.
    """
    owner = QObject()
    yield owner
    owner.deleteLater()
    QCoreApplication.sendPostedEvents(None, QEvent.Type.DeferredDelete)
