# Copyright (C) 2019-2026 Rhys Ulerich <rhys.ulerich@gmail.com>
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.
"""A registry of running Jobs which also starts new Jobs on projects."""
import functools
import logging
import os
import subprocess
import time
import typing

from multiprocessing.connection import wait

from .flags import JobConfiguration, Project, build_flags
from .impl import (
    CallbackRaised,
    Job,
    JobError,
    JobEvent,
    SpawnError,
    absolute_deadline,
)
from .paths import Runtime
from .summary import parse_output

_LOGGER = logging.getLogger(__name__)

Viewer = typing.Callable[[Job, bool], typing.Any]


class JobController:
    """
    Tracks every Job from the moment run(...) returns until it stops.

    All methods must be called from one thread, the same thread which
    pumps Jobs via wait(...), reclaim_resources(), or Job.done(...).
    Usable as a context manager which shuts down upon exit.
    """

    __slots__ = ("_jobs", "_parse", "_viewer")

    def __init__(
        self,
        parse: typing.Callable[[str], typing.Any] = parse_output,
        viewer: typing.Optional[Viewer] = None,
    ) -> None:
        """
        Parse turns each Job's final output into its STOP summary.
        Viewer, when provided, receives open_editor(...) requests.
        """
        self._jobs = []  # type: typing.List[Job]
        self._parse = parse
        self._viewer = viewer

    def __enter__(self) -> "JobController":
        return self

    def __exit__(self, *exc_info: typing.Any) -> None:
        self.shutdown(wait=True)

    @property
    def jobs(self) -> typing.Tuple[Job, ...]:
        """Snapshot of the Jobs which have not yet stopped."""
        return tuple(self._jobs)

    def run(
        self,
        project: Project,
        runtime: Runtime,
        user_path: typing.Optional[str],
        config: JobConfiguration,
        env: typing.Iterable = (),  # Iterable[Tuple[str,str]] breaks!
    ) -> Job:
        """
        Run a new Job for project using Igor from the given runtime.

        Raises JobError, chained from the underlying failure, whenever no
        process could be started.  Once started, failures are reported
        only through the status of the returned Job.
        When env provided, child updates os.environ unsetting None-valued keys.
        """
        try:
            flags = build_flags(project, runtime.path, user_path, config)
        except JobError as e:
            raise JobError("Failed to get Igor flags for this job!") from e

        # None invalid in os.environ so interpret as sentinel for popping
        environ = dict(os.environ)
        for key, value in dict(env).items():
            if value is None:
                environ.pop(key, None)
            else:
                environ[key] = value

        try:
            process = subprocess.Popen(
                [runtime.igor_path] + flags,
                cwd=project.dir,
                env=environ,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            raise SpawnError(
                "Failed to start Igor at {}".format(runtime.igor_path),
                hint="Check the runtime at '{}' is fully installed.".format(
                    runtime.path
                ),
            ) from e

        job = Job(config, process, project, parse=self._parse)
        self._jobs.append(job)
        job.on(JobEvent.STOP, functools.partial(self._remove, job))
        _LOGGER.info("Started %r", job)
        return job

    def _remove(self, job: Job, _: typing.Any) -> None:
        """Stop tracking job, tolerating repeated removal."""
        try:
            self._jobs.remove(job)
        except ValueError:
            return
        _LOGGER.debug("Removed %r leaving %d job(s)", job, len(self._jobs))

    def open_editor(self, job: Job, reuse: bool) -> typing.Any:
        """Ask the viewer to display job, reusing an existing view if asked."""
        if self._viewer is None:
            raise JobError("No viewer is available to display jobs!")
        return self._viewer(job, reuse)

    def reclaim_resources(self) -> None:
        """
        Pump every Job without blocking, issuing any pending events.

        May raise CallbackRaised from at most one Job per call.
        """
        # Copy required to prevent concurrent modification by _remove
        for job in tuple(self._jobs):
            job.done(timeout=0)

    def wait(
        self, timeout: typing.Optional[float] = None, *, resolution: float = 0.05
    ) -> bool:
        """
        Pump all Jobs until every one has stopped.  Were they all stopped?

        Timeout is given in seconds with None meaning to block indefinitely.
        May raise CallbackRaised when some observer raised.
        """
        deadline = absolute_deadline(relative_timeout=timeout)
        while True:
            # (1) Issue whatever events are immediately available
            self.reclaim_resources()

            # (2) Exit loop once nothing remains
            if not self._jobs:
                return True

            # (3) Possibly throw in the towel...
            monotonic = time.monotonic()
            if monotonic >= deadline:
                return False

            # (4) ...then block until output or the next exit check
            waitables = [w for job in self._jobs for w in job.waitables()]
            timeout = min(resolution, deadline - monotonic)
            if waitables:
                wait(waitables, timeout=timeout)
            else:
                time.sleep(timeout)

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop every registered Job and, when wait, reap each of them.

        Without wait, each Job is pumped once without blocking so those
        already exited are released.  Any still exiting are then owned by
        the caller, who must pump them via done(...) to release them.
        Observer failures are logged rather than aborting the teardown.
        """
        jobs = tuple(self._jobs)
        _LOGGER.debug("Shutting down %d job(s)", len(jobs))
        for job in jobs:
            job.stop()
        del self._jobs[:]
        timeout = None if wait else 0.0
        for job in jobs:
            while True:
                try:
                    job.done(timeout=timeout)
                    break
                except CallbackRaised:
                    _LOGGER.exception("Observer of %r raised", job)
