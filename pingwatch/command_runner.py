"""Asynchronous execution of external commands on the Qt event loop."""

import logging
from typing import Any, Protocol

from PySide6.QtCore import QObject, QProcess, QProcessEnvironment, Signal

from pingwatch.models import CommandResponse

logger = logging.getLogger(__name__)


class Runner(Protocol):
    """Interface of a single-flight command runner.

    ``complete`` is a signal emitting one CommandResponse per run, after
    the command has exited.
    """

    complete: Any

    @property
    def is_pending(self) -> bool:
        ...

    def run(self, command: str, arguments: list[str] | None = None,
            options: list[str] | None = None) -> None:
        ...


def check_request(command: Any, arguments: Any, options: Any) -> tuple[list[str], list[str]]:
    """Validate a run request, returning normalized argument/option lists.

    Raises:
        TypeError: command is not a string, or arguments/options are not
            lists of strings.
        ValueError: command is empty or an option is not KEY=VALUE.
    """
    if not isinstance(command, str):
        raise TypeError(f"command must be a string: {command!r}")
    if not command:
        raise ValueError("command must be a non-empty string")

    checked = []
    for name, values in (("arguments", arguments), ("options", options)):
        if values is None:
            values = []
        if not isinstance(values, list):
            raise TypeError(f"{name} must be a list of strings: {values!r}")
        for value in values:
            if not isinstance(value, str):
                raise TypeError(f"{name} must contain only strings: {value!r}")
        checked.append(list(values))

    for option in checked[1]:
        if "=" not in option:
            raise ValueError(f"options must be KEY=VALUE environment entries: {option!r}")
    return checked[0], checked[1]


class CommandRunner(QObject):
    """Runs one external command at a time and reports when it exits.

    Standard output and standard error are collected chunk by chunk and
    decoded once the process has exited. Any standard error output, or a
    process level error such as a failure to start, marks the run as
    failed; the response then carries the error text instead of the
    output.

    The runner can be reused once a run has completed; starting a new run
    discards the previous results.
    """

    complete = Signal(object)  # Emits CommandResponse

    def __init__(self, parent=None):
        super().__init__(parent)
        self._command: str | None = None
        self._arguments: list[str] = []
        self._options: list[str] = []
        self._stdout = bytearray()
        self._stderr = bytearray()
        self._error_encountered = False
        self._pending = False
        self._process: QProcess | None = None

    @property
    def command(self) -> str | None:
        return self._command

    @property
    def arguments(self) -> list[str]:
        return list(self._arguments)

    @property
    def options(self) -> list[str]:
        return list(self._options)

    @property
    def is_pending(self) -> bool:
        return self._pending

    @property
    def is_valid(self) -> bool:
        """True once a run has completed without any error."""
        return self._command is not None and not self._pending and not self._error_encountered

    @property
    def result(self) -> str:
        return self._stdout.decode("utf-8", errors="replace")

    @property
    def error(self) -> str:
        return self._stderr.decode("utf-8", errors="replace")

    def run(self, command: str, arguments: list[str] | None = None,
            options: list[str] | None = None) -> None:
        """Start command asynchronously.

        Args:
            command: Program to execute
            arguments: Program arguments
            options: KEY=VALUE entries added to the child environment

        Raises:
            RuntimeError: A previous run is still pending.
            TypeError, ValueError: The request is malformed.
        """
        if self._pending:
            raise RuntimeError(f"A run of {self._command!r} is already in progress")
        arguments, options = check_request(command, arguments, options)

        self._command = command
        self._arguments = arguments
        self._options = options
        self._stdout = bytearray()
        self._stderr = bytearray()
        self._error_encountered = False
        self._pending = True

        process = QProcess(self)
        process.setProgram(command)
        process.setArguments(arguments)
        if options:
            environment = QProcessEnvironment.systemEnvironment()
            for option in options:
                key, _, value = option.partition("=")
                environment.insert(key, value)
            process.setProcessEnvironment(environment)

        process.readyReadStandardOutput.connect(self._on_stdout)
        process.readyReadStandardError.connect(self._on_stderr)
        process.errorOccurred.connect(self._on_error)
        process.finished.connect(self._on_finished)
        self._process = process

        logger.debug("Spawning: %s %s", command, " ".join(arguments))
        process.start()

    def _on_stdout(self):
        if self._process is not None:
            self._stdout += self._process.readAllStandardOutput().data()

    def _on_stderr(self):
        if self._process is not None:
            self._stderr += self._process.readAllStandardError().data()
            self._error_encountered = True

    def _on_error(self, error):
        logger.debug(
            "Process error: command=%s, error=%s, message=%s",
            self._command,
            error,
            self._process.errorString() if self._process is not None else "",
        )
        self._error_encountered = True
        # A process that never started will not emit finished.
        if error == QProcess.ProcessError.FailedToStart:
            self._finish()

    def _on_finished(self, exit_code, exit_status):
        logger.debug(
            "Process exited: command=%s, exit_code=%s, status=%s",
            self._command,
            exit_code,
            exit_status,
        )
        self._finish()

    def _finish(self):
        if not self._pending:
            return

        process = self._process
        if process is not None:
            # Pick up anything still buffered when the process exited.
            self._stdout += process.readAllStandardOutput().data()
            stderr_tail = process.readAllStandardError().data()
            if stderr_tail:
                self._stderr += stderr_tail
                self._error_encountered = True

        self._pending = False
        valid = self.is_valid
        if valid:
            result = self.result
        else:
            result = self.error
            if not result and process is not None:
                result = process.errorString()

        self._process = None
        if process is not None:
            process.deleteLater()

        self.complete.emit(CommandResponse(valid=valid, result=result, source=self))
