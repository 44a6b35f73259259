# Copyright (C) 2019-2026 Rhys Ulerich <rhys.ulerich@gmail.com>
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.
"""Demo: Observers of a Job see output and, lastly, its stop."""
import subprocess
import sys

from ..flags import JobConfiguration, Project
from ..impl import Job, JobEvent, Stopped

CHILD = """
import sys, time
for i in range(3):
    print("step", i, end="\\r\\n", flush=True)
    time.sleep(0.1)
sys.exit(2)
"""


if __name__ == "__main__":
    process = subprocess.Popen(
        [sys.executable, "-c", CHILD],
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
    )
    config = JobConfiguration("Run", "/tmp/build", "Linux")
    job = Job(config, process, Project("/tmp/Demo/Demo.yyp"))

    # Every STDOUT event carries the whole buffer so far
    sizes = []
    job.on(JobEvent.STDOUT, lambda output: sizes.append(len(output)))
    events = []
    job.on(JobEvent.STOP, lambda summary: events.append("stop"))
    future = job.finished()

    # Nothing is observed until the Job is pumped
    assert job.done(timeout=60)
    assert sizes == sorted(sizes)
    assert "\r" not in job.output
    assert events == ["stop"]
    assert future.result(timeout=0) == Stopped(False, 2)
    assert job.status_display == "Failed"

    # Observers of STOP registered afterwards fire immediately
    job.on(JobEvent.STOP, lambda summary: events.append("late"))
    assert events == ["stop", "late"]

    print("callbacks: OK")
