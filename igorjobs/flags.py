# Copyright (C) 2019-2026 Rhys Ulerich <rhys.ulerich@gmail.com>
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.
"""Projects, job configurations, and the Igor command line built from them."""
import os
import typing

from .impl import UnsupportedPlatform, UnsupportedVerb

RUN = "Run"
PACKAGE = "Package"
PACKAGE_ZIP = "PackageZip"
CLEAN = "Clean"

# Verbs accepted from callers, before any platform-specific rewriting
VERBS = (RUN, PACKAGE, CLEAN)

# Platforms on which Package must instead be requested as PackageZip
ZIP_PACKAGE_PLATFORMS = ("Windows", "Mac")

# Extension of the /of= output blob per target platform
OUTPUT_EXTENSIONS = {
    "Windows": ".win",
    "Mac": ".zip",
    "Linux": ".zip",
}  # type: typing.Dict[str, str]

# Runner for which the incremental cache must be ignored
YYC = "YYC"


class Project:
    """A project file on disk and the names under which it is displayed."""

    __slots__ = ("path", "dir", "name", "display_name", "format")

    def __init__(
        self,
        path: str,
        display_name: typing.Optional[str] = None,
        format: typing.Optional[str] = None,
    ) -> None:
        self.path = path
        self.dir = os.path.dirname(os.path.abspath(path))
        self.name = os.path.splitext(os.path.basename(path))[0]
        self.display_name = self.name if display_name is None else display_name
        self.format = format

    def __repr__(self) -> str:
        return "Project({!r})".format(self.path)


class JobConfiguration:
    """
    Everything, other than the project and runtime, describing one build.

    Treat instances as immutable except for verb, which build_flags(...)
    may rewrite into a platform-specific variant before use.
    """

    __slots__ = (
        "verb",
        "build_path",
        "platform",
        "runner",
        "threads",
        "config_name",
    )

    def __init__(
        self,
        verb: str,
        build_path: str,
        platform: str,
        runner: str = "VM",
        threads: int = 8,
        config_name: str = "Default",
    ) -> None:
        assert isinstance(threads, int) and threads >= 1, threads
        self.verb = verb
        self.build_path = build_path
        self.platform = platform
        self.runner = runner
        self.threads = threads
        self.config_name = config_name

    def __repr__(self) -> str:
        return (
            "JobConfiguration(verb={!r}, build_path={!r}, platform={!r}, "
            "runner={!r}, threads={!r}, config_name={!r})"
        ).format(
            self.verb,
            self.build_path,
            self.platform,
            self.runner,
            self.threads,
            self.config_name,
        )


def build_flags(
    project: Project,
    runtime_path: str,
    user_path: typing.Optional[str],
    config: JobConfiguration,
) -> typing.List[str]:
    """
    Select the flags for Igor to run the requested job.

    Raises UnsupportedVerb or UnsupportedPlatform rather than returning
    flags which Igor could not act upon.  On Windows and Mac, Package is
    rewritten to PackageZip within config itself.  A config so rewritten
    is then rejected with UnsupportedVerb, so running a Package job again
    requires a fresh JobConfiguration (e.g. from make_configuration).
    """
    try:
        extension = OUTPUT_EXTENSIONS[config.platform]
    except KeyError:
        raise UnsupportedPlatform(
            "No output extension known for platform: {}".format(
                config.platform
            ),
            hint="Supported platforms are {}.".format(
                ", ".join(sorted(OUTPUT_EXTENSIONS))
            ),
        ) from None

    flags = [
        "/project={}".format(project.path),
        "/config={}".format(config.config_name),
        "/rp={}".format(runtime_path),
        "/runtime={}".format(config.runner),
        "/v",
        "/cache={}".format(os.path.join(config.build_path, "cache")),
        "/of={}".format(
            os.path.join(
                config.build_path, "output", project.display_name + extension
            )
        ),
    ]

    if user_path:
        flags.append("/uf={}".format(user_path))

    # Ignore cache, otherwise changes do not apply under YYC
    if config.runner == YYC:
        flags.append("/ic")

    if config.verb == PACKAGE:
        if config.platform in ZIP_PACKAGE_PLATFORMS:
            config.verb = PACKAGE_ZIP
    elif config.verb not in (RUN, CLEAN):
        raise UnsupportedVerb(
            "Unhandled command case for flags: {}".format(config.verb),
            hint="Supported verbs are {}.".format(", ".join(VERBS)),
        )

    flags.append("--")
    flags.extend((config.platform, config.verb))
    return flags
