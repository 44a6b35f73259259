# Copyright (C) 2019-2026 Rhys Ulerich <rhys.ulerich@gmail.com>
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.
"""Locating runtimes and the Igor executable within a runtime."""
import ntpath
import os
import platform
import posixpath
import sys
import typing

from .impl import RuntimeDiscoveryError, UnsupportedPlatform

# Environment variable overriding default_runtimes_path()
RUNTIMES_PATH_ENV = "IGORJOBS_RUNTIMES_PATH"

# Igor platform command names keyed by sys.platform
PLATFORM_COMMAND_NAMES = {
    "win32": "Windows",
    "darwin": "Mac",
    "linux": "Linux",
}  # type: typing.Dict[str, str]

# Where the IDE caches downloaded runtimes keyed by sys.platform
DEFAULT_RUNTIMES_PATHS = {
    "win32": r"C:\ProgramData\GameMakerStudio2\Cache\runtimes",
    "darwin": "/Users/Shared/GameMakerStudio2/Cache/runtimes",
}  # type: typing.Dict[str, str]


def host_platform(system: str = sys.platform) -> str:
    """The Igor platform command name for the given (or running) host."""
    for prefix, name in PLATFORM_COMMAND_NAMES.items():
        if system.startswith(prefix):
            return name
    raise UnsupportedPlatform("Platform unsupported: {}".format(system))


def igor_executable(
    runtime_path: str,
    system: str = sys.platform,
    machine: typing.Optional[str] = None,
) -> str:
    """Path to the Igor executable shipped within some runtime."""
    if machine is None:
        machine = platform.machine()
    name = host_platform(system)
    if name == "Windows":
        return ntpath.join(
            runtime_path, "bin", "igor", "windows", "x86", "Igor.exe"
        )
    arch = "x86" if machine.lower() in ("x86_64", "amd64", "x64") else "arm64"
    if name == "Mac":
        return posixpath.join(runtime_path, "bin", "igor", "osx", arch, "Igor")
    return posixpath.join(runtime_path, "bin", "igor", "linux", "x64", "Igor")


def default_runtimes_path(
    system: str = sys.platform,
    environ: typing.Mapping[str, str] = os.environ,
) -> typing.Optional[str]:
    """Directory holding runtimes, or None when unknown for this host."""
    override = environ.get(RUNTIMES_PATH_ENV)
    if override:
        return override
    return DEFAULT_RUNTIMES_PATHS.get(system)


def list_runtimes(path: typing.Optional[str] = None) -> typing.List[str]:
    """Sorted names of the runtime directories found beneath path."""
    runtimes_path = default_runtimes_path() if path is None else path
    if runtimes_path is None:
        raise RuntimeDiscoveryError(
            "Platform unsupported!",
            hint="Please provide the runtimes path manually, "
            "e.g. via ${}.".format(RUNTIMES_PATH_ENV),
        )
    try:
        entries = os.listdir(runtimes_path)
    except OSError as e:
        raise RuntimeDiscoveryError(
            "Runtimes path {} doesn't exist".format(runtimes_path)
        ) from e
    return sorted(
        entry
        for entry in entries
        if os.path.isdir(os.path.join(runtimes_path, entry))
    )


class Runtime:
    """
    One installed runtime version which builds projects via its Igor.

    Format names the project format this runtime expects, when known.
    """

    __slots__ = ("path", "version", "format", "igor_path")

    def __init__(
        self,
        path: str,
        version: typing.Optional[str] = None,
        format: typing.Optional[str] = None,
        igor_path: typing.Optional[str] = None,
    ) -> None:
        self.path = path
        self.version = (
            os.path.basename(os.path.normpath(path))
            if version is None
            else version
        )
        self.format = format
        self.igor_path = (
            igor_executable(path) if igor_path is None else igor_path
        )

    def __repr__(self) -> str:
        return "Runtime({!r})".format(self.path)
