# Copyright (C) 2019-2026 Rhys Ulerich <rhys.ulerich@gmail.com>
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.
"""A minimal, terminal-based viewer for the logs of running Jobs."""
import sys
import typing

from .impl import Job, JobEvent


def job_title(job: Job) -> str:
    """Name under which a Job is shown, e.g. 'Game - Run - Finished'."""
    title = "{} - {}".format(job.project_display_name, job.command)
    if job.status_display:
        title += " - " + job.status_display
    return title


class ConsoleLogViewer:
    """
    Writes the output of one watched Job to a text stream.

    Each STDOUT event carries the entire buffer, so only the suffix not
    yet written is emitted.  Callable as viewer(job, reuse) so instances
    may be handed to JobController as its viewer.
    """

    def __init__(self, stream: typing.Optional[typing.TextIO] = None) -> None:
        self.stream = sys.stdout if stream is None else stream
        self.job = None  # type: typing.Optional[Job]
        self._written = 0

    def __call__(self, job: Job, reuse: bool) -> "ConsoleLogViewer":
        """Show job here when reuse, otherwise in a fresh viewer."""
        if not reuse or self.job is None:
            viewer = self if self.job is None else type(self)(self.stream)
            viewer.watch(job)
            return viewer

        # Only one job per view so the previous one no longer runs
        self.job.stop()
        self.watch(job)
        return self

    def watch(self, job: Job) -> None:
        self.job = job
        self._written = 0
        self.stream.write("==> {} <==\n".format(job_title(job)))
        # Catch up on anything buffered before watching began
        self._on_stdout(job, job.output)
        job.on(JobEvent.STDOUT, lambda output: self._on_stdout(job, output))
        job.on(JobEvent.STOP, lambda summary: self._on_stop(job))

    def _on_stdout(self, job: Job, output: str) -> None:
        if job is not self.job:
            return
        self.stream.write(output[self._written:])
        self.stream.flush()
        self._written = len(output)

    def _on_stop(self, job: Job) -> None:
        if job is not self.job:
            return
        self.stream.write("==> {} <==\n".format(job_title(job)))
        self.stream.flush()
