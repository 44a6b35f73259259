# Copyright (C) 2019-2026 Rhys Ulerich <rhys.ulerich@gmail.com>
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at http://mozilla.org/MPL/2.0/.
"""Turn the raw output of an Igor run into a structured Summary."""
import re
import typing

# Igor prints this once all requested tasks succeeded
COMPLETED_MARKER = "Igor complete."

_ERROR = re.compile(r"^\s*(Error\s*:|ERROR\b)|\berror:", re.MULTILINE)
_WARNING = re.compile(r"^\s*(Warning\s*:|WARNING\b)|\bwarning:", re.MULTILINE)


class Summary(typing.NamedTuple):
    """Error and warning lines, in order, and whether Igor completed."""

    errors: typing.Tuple[str, ...]
    warnings: typing.Tuple[str, ...]
    completed: bool


def parse_output(text: str) -> Summary:
    errors = []  # type: typing.List[str]
    warnings = []  # type: typing.List[str]
    for line in text.splitlines():
        if _ERROR.search(line):
            errors.append(line.strip())
        elif _WARNING.search(line):
            warnings.append(line.strip())
    return Summary(
        errors=tuple(errors),
        warnings=tuple(warnings),
        completed=COMPLETED_MARKER in text,
    )
