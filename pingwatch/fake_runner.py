"""Simulated command runner for tests and offline runs."""

import logging
import random
from collections import deque
from collections.abc import Callable

from PySide6.QtCore import QObject, QTimer, Signal

from pingwatch.command_runner import check_request
from pingwatch.models import CommandResponse
from pingwatch.ping import PING_COMMAND

logger = logging.getLogger(__name__)

Responder = Callable[[str, list[str]], tuple[bool, str]]


class SimulatedPing:
    """Generates Linux style ping output with realistic latencies."""

    def __init__(self, seed: int | None = None):
        """Initialize with optional random seed for deterministic behavior."""
        self._random = random.Random(seed)

        self.base_latency = 25.0  # Base latency in ms
        self.latency_variance = 5.0
        self.spike_probability = 0.05
        self.spike_multiplier = 3.0  # Spike makes latency 3x higher
        self.loss_probability = 0.02

    def _latency(self) -> float:
        if self._random.random() < self.spike_probability:
            latency = self.base_latency * self.spike_multiplier + self._random.gauss(
                0, self.latency_variance
            )
        else:
            latency = self.base_latency + self._random.gauss(0, self.latency_variance)
        return max(0.1, latency)

    def output(self, destination: str, count: int) -> str:
        """Render the output of one ping run with count requests."""
        lines = [f"PING {destination} ({destination}) 56(84) bytes of data."]
        received = 0
        for seq in range(1, count + 1):
            if self._random.random() < self.loss_probability:
                lines.append(f"no answer yet for icmp_seq={seq}")
                continue
            received += 1
            lines.append(
                f"64 bytes from {destination}: icmp_seq={seq} ttl=57 time={self._latency():.1f} ms"
            )
        loss = 100.0 * (count - received) / count if count else 0.0
        lines.append("")
        lines.append(f"--- {destination} ping statistics ---")
        lines.append(f"{count} packets transmitted, {received} received, {loss:.0f}% packet loss")
        return "\n".join(lines) + "\n"

    def respond(self, command: str, arguments: list[str]) -> tuple[bool, str]:
        """Responder answering ping requests built by the network target."""
        if command != PING_COMMAND or not arguments:
            return False, f"{command}: not simulated"
        count = 1
        for arg in arguments:
            if arg.startswith("-c"):
                count = int(arg[2:])
        return True, self.output(arguments[-1], count)


class FakeCommandRunner(QObject):
    """Command runner that answers with scripted responses.

    Responses are queued with ``queue_response`` and consumed one per
    run; once the queue is empty the optional ``responder`` is consulted.
    Completion is delivered from a zero-delay child timer so callers observe
    the same asynchronous behaviour as with a real process. Every request
    is recorded in ``calls``.
    """

    complete = Signal(object)  # Emits CommandResponse

    def __init__(self, parent=None, responder: Responder | None = None):
        super().__init__(parent)
        self._responses: deque[tuple[bool, str]] = deque()
        self._responder = responder
        self._pending = False
        self._response: tuple[bool, str] | None = None
        self.calls: list[tuple[str, list[str], list[str]]] = []

        # Owned by the runner so a pending completion is dropped with it.
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._finish)

    @property
    def is_pending(self) -> bool:
        return self._pending

    def queue_response(self, output: str, valid: bool = True):
        """Queue the response for a future run."""
        self._responses.append((valid, output))

    def run(self, command: str, arguments: list[str] | None = None,
            options: list[str] | None = None) -> None:
        if self._pending:
            raise RuntimeError(f"A run of {command!r} is already in progress")
        arguments, options = check_request(command, arguments, options)

        self._pending = True
        self.calls.append((command, arguments, options))
        if self._responses:
            valid, output = self._responses.popleft()
        elif self._responder is not None:
            valid, output = self._responder(command, arguments)
        else:
            valid, output = False, f"{command}: no scripted response"

        logger.debug("Fake run: %s %s (valid=%s)", command, " ".join(arguments), valid)
        self._response = (valid, output)
        self._timer.start(0)

    def _finish(self):
        valid, output = self._response
        self._response = None
        self._pending = False
        self.complete.emit(CommandResponse(valid=valid, result=output, source=self))
