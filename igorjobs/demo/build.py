# Copyright (C) 2019-2026 Rhys Ulerich <rhys.ulerich@gmail.com>
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.
"""
Demo: Build a project with the last (by name) installed runtime.

Usage: python -m igorjobs.demo.build PROJECT.yyp [Run|Package|Clean]
Set IGORJOBS_RUNTIMES_PATH when runtimes are not in the default place.
Interrupting with Ctrl-C stops the build.
"""
import os
import sys
from logging import DEBUG, basicConfig, info

from ..controller import JobController
from ..flags import Project
from ..impl import JobError
from ..paths import Runtime, default_runtimes_path, list_runtimes
from ..task import make_configuration, run_task
from ..viewer import ConsoleLogViewer


def main(path: str, verb: str) -> int:
    project = Project(path)
    with JobController(viewer=ConsoleLogViewer()) as controller:
        try:
            runtimes_path = default_runtimes_path()
            runtimes = list_runtimes(runtimes_path)
            if not runtimes:
                raise JobError("No runtimes available to compile!")
            assert runtimes_path is not None
            runtime = Runtime(os.path.join(runtimes_path, runtimes[-1]))
            info("Using %s", runtime)
            config = make_configuration(project, verb)
            job = run_task(controller, project, runtime, None, config, True)
        except JobError as e:
            print(e.describe(), file=sys.stderr)
            return 2

        try:
            controller.wait()
        except KeyboardInterrupt:
            job.stop()
            controller.wait()

    for line in job.summary.errors:
        print(line, file=sys.stderr)
    return 0 if job.status_display == "Finished" else 1


if __name__ == "__main__":
    basicConfig(
        level=DEBUG,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    if len(sys.argv) not in (2, 3):
        print(__doc__, file=sys.stderr)
        sys.exit(2)
    sys.exit(main(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else "Run"))
