# Copyright (C) 2019-2026 Rhys Ulerich <rhys.ulerich@gmail.com>
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.
"""Implementation of Job and the exceptions shared across igorjobs."""
import codecs
import concurrent.futures
import enum
import logging
import os
import subprocess
import time
import typing

# Waiting depends only upon the selector-backed wait(...) from multiprocessing.
from multiprocessing.connection import wait

from .summary import parse_output

_LOGGER = logging.getLogger(__name__)

# Bytes requested from a stream per read
_CHUNK = 1 << 16


class JobError(Exception):
    """
    Reports a failure preparing or launching a compile job.

    Any underlying failure is available as __cause__ (see PEP 3134).
    The optional hint suggests how a user might remedy the situation.
    """

    def __init__(self, message: str, hint: typing.Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def describe(self) -> str:
        """Render message, chained causes, and any hint for display."""
        lines = [self.message]
        cause = self.__cause__
        while cause is not None:
            lines.append("Caused by: {}".format(cause))
            cause = cause.__cause__
        if self.hint:
            lines.append("")
            lines.append(self.hint)
        return "\n".join(lines)


class UnsupportedVerb(JobError):
    """Reports a requested build action which Igor flags cannot express."""

    pass


class UnsupportedPlatform(JobError):
    """Reports a target or host platform lacking required knowledge."""

    pass


class SpawnError(JobError):
    """Reports the compiler driver process could not be started."""

    pass


class BuildDirectoryError(JobError):
    """Reports the build output directory could not be created."""

    pass


class RuntimeMismatch(JobError):
    """Reports a runtime whose project format differs from the project's."""

    pass


class RuntimeDiscoveryError(JobError):
    """Reports the runtimes directory is unknown or unreadable."""

    pass


class CallbackRaised(Exception):
    """
    Reports an Exception raised from an observer registered with a Job.

    Instances of this type must have non-None __cause__ members (see PEP 3134).
    The __cause__ member will be the first Exception raised by client code.

    Every observer in a broadcast is attempted before this is raised and
    the Job is left fully consistent, so callers MAY simply continue
    pumping the Job afterwards.
    """

    pass


class JobEvent(enum.Enum):
    """Kinds of events which a Job broadcasts to its observers."""

    STDOUT = "stdout"  # Data is the entire output buffer
    STOP = "stop"  # Data is the parsed summary of the output buffer


class Running(typing.NamedTuple):
    """Status of a Job whose process has not yet been reaped nor stopped."""

    pass


class Stopped(typing.NamedTuple):
    """Terminal status of a Job and how it came to stop."""

    stopped_by_user: bool
    exit_code: int


JobStatus = typing.Union[Running, Stopped]


def absolute_deadline(relative_timeout: typing.Optional[float]) -> float:
    """
    Convert relative_timeout in seconds into a monotonic, absolute deadline.

    A large, absolute timeout is returned whenever relative_timeout is None.
    """
    # Cannot be Inf nor sys.float_info.max nor sys.maxsize / 1000
    # nor _PyTime_t per https://stackoverflow.com/questions/45704243!
    return time.monotonic() + (
        (60 * 60 * 24 * 7)  # 604.8k seconds ought to be enough for anyone
        if relative_timeout is None
        else relative_timeout
    )


def status_display(status: JobStatus) -> str:
    """Label shown for a status: empty, Stopped, Failed, or Finished."""
    if not isinstance(status, Stopped):
        return ""
    if status.stopped_by_user:
        return "Stopped"
    if status.exit_code != 0:
        return "Failed"
    return "Finished"


class Job:
    """
    Job instances supervise one run of the external compiler driver.

    Jobs accumulate the combined output of the process, track whether it
    is Running or Stopped, and broadcast JobEvents to registered observers.
    Nothing happens in the background: output and exit are only observed
    while some caller pumps the Job via done(...) or a JobController.
    Jobs can be neither copied nor pickled.
    """

    __slots__ = (
        "_config",
        "_process",
        "_project",
        "_parse",
        "_args",
        "_pid",
        "_streams",
        "_decoders",
        "_output",
        "_status",
        "_status_display",
        "_summary",
        "_listeners",
        "_stopping",
    )

    def __init__(
        self,
        config: typing.Any,
        process: subprocess.Popen,
        project: typing.Any,
        parse: typing.Optional[typing.Callable[[str], typing.Any]] = None,
    ) -> None:
        """
        Wrap an already-spawned process on behalf of some project.

        The parse callable turns the final output into the STOP summary.
        Output is appended in arrival order when stderr is merged into
        stdout (stderr=subprocess.STDOUT).  When the two are separate pipes,
        chunks ready at once are appended in the order wait(...) reports
        them, so their interleaving only approximates arrival order.
        """
        assert process is not None  # Becomes None after the exit is handled
        self._config = config
        self._process = process  # type: typing.Optional[subprocess.Popen]
        self._project = project
        self._parse = parse_output if parse is None else parse

        args = process.args
        if isinstance(args, (str, bytes, os.PathLike)):
            args = [args]
        self._args = tuple(os.fsdecode(arg) for arg in args)
        self._pid = process.pid
        self._output = " ".join(self._args) + "\n\n"
        self._status = Running()  # type: JobStatus
        self._status_display = ""
        self._summary = None  # type: typing.Any

        # Both stdout and stderr feed the same buffer
        self._streams = [
            s for s in (process.stdout, process.stderr) if s is not None
        ]  # type: typing.List[typing.IO[bytes]]
        self._decoders = {
            s.fileno(): codecs.getincrementaldecoder("utf-8")("replace")
            for s in self._streams
        }  # type: typing.Dict[int, codecs.IncrementalDecoder]

        # Populated by calls to on(...)
        self._listeners = {
            event: [] for event in JobEvent
        }  # type: typing.Dict[JobEvent, typing.List[typing.Callable]]

        # True only while STOP is being broadcast
        self._stopping = False

    def __copy__(self) -> typing.NoReturn:
        """Disallow copying as duplicates cannot sensibly share a process."""
        # In particular, which copy would reap the process?
        raise NotImplementedError("Jobs cannot be copied.")

    def __reduce__(self) -> typing.NoReturn:
        """Disallow pickling as duplicates cannot sensibly share a process."""
        raise NotImplementedError("Jobs cannot be pickled.")

    def __repr__(self) -> str:
        return "<Job {} {} pid={} {}>".format(
            self.project_display_name, self.command, self._pid, self._status
        )

    def on(
        self,
        event: typing.Union[JobEvent, str],
        callback: typing.Callable[[typing.Any], typing.Any],
    ) -> None:
        """
        Register callback(data) for every future broadcast of event.

        Registering the same callback twice delivers each event twice.
        When the Job has already stopped, a STOP observer is invoked
        immediately with the summary and may raise CallbackRaised.
        A STOP observer registered by another STOP observer is instead
        invoked once every observer in the broadcast has been notified.
        """
        event = JobEvent(event)
        if self._process is not None or self._stopping:
            self._listeners[event].append(callback)
        elif event is JobEvent.STOP:
            self._raise_first(self._notify((callback,), self._summary))

    def stop(self) -> None:
        """
        Record a user-initiated stop then ask the process to terminate.

        Status changes immediately, before the process confirms exiting.
        Calling stop() on a Job which already stopped does nothing.
        """
        if not isinstance(self._status, Running):
            return
        self._status = Stopped(stopped_by_user=True, exit_code=0)
        _LOGGER.info("Stopping %r", self)
        assert self._process is not None
        self._process.terminate()

    def finished(self) -> "concurrent.futures.Future[Stopped]":
        """
        A Future resolved with the final status once this Job stops.

        Already resolved when the status is Stopped.  Otherwise resolved
        when the STOP event is broadcast, which requires someone to pump
        this Job (e.g. via done(...)) on the current thread.
        """
        future = concurrent.futures.Future()  # type: concurrent.futures.Future
        if isinstance(self._status, Stopped):
            future.set_result(self._status)
            return future

        def resolve(_: typing.Any) -> None:
            if not future.done():
                future.set_result(self._status)

        self.on(JobEvent.STOP, resolve)
        return future

    def waitables(self) -> typing.List[typing.IO[bytes]]:
        """The objects on which to wait(...) for new output."""
        return list(self._streams)

    def done(
        self, timeout: typing.Optional[float] = None, *, resolution: float = 0.05
    ) -> bool:
        """
        Has the process exited and been reaped?  Pumps events until then.

        Timeout is given in seconds with None meaning to block indefinitely.
        Output is broadcast as it arrives, and STOP once the process exits.
        May raise CallbackRaised when some observer raised.
        """
        deadline = absolute_deadline(relative_timeout=timeout)
        while self._process is not None:
            # Sliced waits notice exits while grandchildren hold pipes open
            remaining = max(0.0, deadline - time.monotonic())
            self._pump(min(resolution, remaining))
            if self._process is None:
                break
            if time.monotonic() >= deadline:
                return False
        return True

    def _pump(self, timeout: float) -> None:
        """Read any available output then handle any exit."""
        # Observers may pump reentrantly so recheck after every broadcast
        assert self._process is not None
        if self._streams:
            for stream in wait(self._streams, timeout):
                self._read(stream)  # type: ignore
                if self._process is None:
                    return
        else:
            try:
                self._process.wait(timeout)
            except subprocess.TimeoutExpired:
                pass

        if self._process.poll() is None:
            return

        # Exited, so whatever remains in the pipes is already written
        while self._streams:
            ready = wait(self._streams, 0)
            if not ready:
                break
            for stream in ready:
                self._read(stream)  # type: ignore
                if self._process is None:
                    return
        self._on_exit()

    def _read(self, stream: typing.IO[bytes]) -> None:
        """Consume one chunk from stream, closing it on end-of-file."""
        if stream.closed:
            return
        fileno = stream.fileno()
        chunk = os.read(fileno, _CHUNK)
        if chunk:
            self._on_output(self._decoders[fileno].decode(chunk))
            return

        # Hang up so flush any partial character
        self._streams.remove(stream)
        tail = self._decoders.pop(fileno).decode(b"", final=True)
        stream.close()
        self._on_output(tail)

    def _on_output(self, text: str) -> None:
        text = text.replace("\r", "")
        if not text:
            return
        self._output += text
        self._raise_first(
            self._notify(self._listeners[JobEvent.STDOUT], self._output)
        )

    def _on_exit(self) -> None:
        """Finalize status, release the process, then broadcast STOP."""
        assert self._process is not None
        if isinstance(self._status, Running):
            # Negative returncodes report death by signal
            returncode = self._process.returncode
            self._status = Stopped(
                stopped_by_user=False,
                exit_code=0 if returncode is None else returncode,
            )
        self._status_display = status_display(self._status)
        self._summary = self._parse(self._output)
        _LOGGER.info("%r exited: %s", self, self._status_display)

        # Release first so that observers see a done() Job and nothing
        # further can be appended.  Should close() throw just below,
        # notice it will never be retried.
        self._process = None
        streams, self._streams = self._streams, []
        self._decoders.clear()
        for stream in streams:
            stream.close()

        # Observers registered during a broadcast wait for the next round
        pending = self._listeners[JobEvent.STOP]
        raised = None  # type: typing.Optional[Exception]
        self._stopping = True
        try:
            while pending:
                listeners = tuple(pending)
                pending.clear()
                first = self._notify(listeners, self._summary)
                if raised is None:
                    raised = first
        finally:
            self._stopping = False
            for callbacks in self._listeners.values():
                callbacks.clear()
        self._raise_first(raised)

    @staticmethod
    def _notify(
        listeners: typing.Iterable[typing.Callable], data: typing.Any
    ) -> typing.Optional[Exception]:
        """Deliver data to a snapshot of listeners returning any 1st error."""
        raised = None  # type: typing.Optional[Exception]
        for callback in tuple(listeners):
            try:
                callback(data)
            except Exception as e:
                if raised is None:
                    raised = e
        return raised

    @staticmethod
    def _raise_first(raised: typing.Optional[Exception]) -> None:
        if raised is not None:
            raise CallbackRaised() from raised

    @property
    def output(self) -> str:
        """The combined stdout and stderr of the job's process."""
        return self._output

    @property
    def status(self) -> JobStatus:
        """Whether this job has stopped yet, and info on how it was stopped."""
        return self._status

    @property
    def status_display(self) -> str:
        """Empty while running, otherwise Stopped, Failed, or Finished."""
        return self._status_display

    @property
    def summary(self) -> typing.Any:
        """The parsed output once stopped, otherwise None."""
        return self._summary

    @property
    def command(self) -> str:
        """The verb this job is running."""
        return self._config.verb

    @property
    def config(self) -> typing.Any:
        return self._config

    @property
    def args(self) -> typing.Tuple[str, ...]:
        return self._args

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def project_name(self) -> str:
        return self._project.name

    @property
    def project_display_name(self) -> str:
        return self._project.display_name

    @property
    def project_dir(self) -> str:
        return self._project.dir

    @property
    def project_path(self) -> str:
        return self._project.path
