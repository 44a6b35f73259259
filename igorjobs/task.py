# Copyright (C) 2019-2026 Rhys Ulerich <rhys.ulerich@gmail.com>
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.
"""Preparing and launching a build task on behalf of a user."""
import logging
import os
import typing

from .controller import JobController
from .flags import JobConfiguration, Project
from .impl import BuildDirectoryError, Job, RuntimeMismatch
from .paths import Runtime, host_platform

_LOGGER = logging.getLogger(__name__)


def default_build_path(
    project: Project, global_build_path: typing.Optional[str] = None
) -> str:
    """Per-project directory beneath global_build_path, else project/build."""
    if global_build_path:
        return os.path.join(global_build_path, project.display_name)
    return os.path.join(project.dir, "build")


def make_configuration(
    project: Project,
    verb: str,
    *,
    build_path: typing.Optional[str] = None,
    global_build_path: typing.Optional[str] = None,
    platform: typing.Optional[str] = None,
    runner: str = "VM",
    threads: int = 8,
    config_name: str = "Default",
) -> JobConfiguration:
    """A JobConfiguration for verb with defaults filled in for project."""
    return JobConfiguration(
        verb=verb,
        build_path=(
            default_build_path(project, global_build_path)
            if build_path is None
            else build_path
        ),
        platform=host_platform() if platform is None else platform,
        runner=runner,
        threads=threads,
        config_name=config_name,
    )


def check_compatible(project: Project, runtime: Runtime) -> None:
    """Raise RuntimeMismatch when runtime expects another project format."""
    if project.format is None or runtime.format is None:
        return
    if project.format == runtime.format:
        return
    raise RuntimeMismatch(
        "Runtime version '{}' is not compatible with this project "
        "format!".format(runtime.version),
        hint=(
            "This project is in the YY {} format, where the chosen runtime "
            "({}) expects the {} format.\n\nPlease pick a matching runtime, "
            "or convert your project to the desired format."
        ).format(project.format, runtime.version, runtime.format),
    )


def run_task(
    controller: JobController,
    project: Project,
    runtime: Runtime,
    user_path: typing.Optional[str],
    config: JobConfiguration,
    reuse: typing.Optional[bool] = None,
) -> Job:
    """
    Check, prepare the build directory for, and then run a Job.

    When reuse is not None the Job is also opened in the controller's
    viewer, with reuse stating whether an existing view may be recycled.
    Raises JobError subclasses for any failure before the process starts.
    """
    check_compatible(project, runtime)

    try:
        os.makedirs(config.build_path, exist_ok=True)
    except OSError as e:
        raise BuildDirectoryError(
            "Failed to create the build directory for project output!",
            hint=(
                "Ensure the path '{}' is valid, and that you have "
                "permission to edit files and directories there."
            ).format(config.build_path),
        ) from e

    _LOGGER.debug("Building %s into %s", project, config.build_path)
    job = controller.run(project, runtime, user_path, config)
    if reuse is not None:
        controller.open_editor(job, reuse)
    return job
