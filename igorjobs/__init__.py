# Copyright (C) 2019-2026 Rhys Ulerich <rhys.ulerich@gmail.com>
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.
"""
Supervised compile jobs running GameMaker's Igor with observable output!

A JobController starts Igor on a project and tracks the resulting Job
until it stops.  A few points distinguish the implementation:

 * First, no background threads are spun up.  Output and exit are
   observed only while the caller pumps Jobs, playing well with any
   host application's own event loop.
 * Second, stdout and stderr are merged into one buffer in arrival order,
   and observers always receive the entire buffer.
 * Third, a Job's status changes exactly once from Running to Stopped,
   and a user-requested stop is never overwritten by the exit that follows.
 * Fourth, every failure before a process starts is a JobError with a
   chained cause and, where possible, a hint for the user.
 * Lastly, the API communicates when Exceptions occur within an observer.

Requires CPython 3.8 or newer on a POSIX host.
"""
from .controller import JobController
from .flags import JobConfiguration, Project, build_flags
from .impl import (
    BuildDirectoryError,
    CallbackRaised,
    Job,
    JobError,
    JobEvent,
    JobStatus,
    Running,
    RuntimeDiscoveryError,
    RuntimeMismatch,
    SpawnError,
    Stopped,
    UnsupportedPlatform,
    UnsupportedVerb,
)
from .paths import Runtime, list_runtimes
from .summary import Summary, parse_output
from .task import run_task
from .viewer import ConsoleLogViewer

__all__ = [
    "BuildDirectoryError",
    "CallbackRaised",
    "ConsoleLogViewer",
    "Job",
    "JobConfiguration",
    "JobController",
    "JobError",
    "JobEvent",
    "JobStatus",
    "Project",
    "Running",
    "Runtime",
    "RuntimeDiscoveryError",
    "RuntimeMismatch",
    "SpawnError",
    "Stopped",
    "Summary",
    "UnsupportedPlatform",
    "UnsupportedVerb",
    "build_flags",
    "list_runtimes",
    "parse_output",
    "run_task",
]
