# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Retryable failure classification."""

from __future__ import annotations

import re
from collections.abc import Iterable

import typer


def compile_patterns(patterns: Iterable[str] | None) -> tuple[re.Pattern[str], ...]:
    """Compile retryable error patterns once for the whole run.

    Args:
        patterns: Regular expressions in configuration order, or None.

    Returns:
        Tuple of compiled patterns, empty when nothing was configured.

    Raises:
        typer.BadParameter: If any pattern is not a valid regular expression.
    """
    compiled: list[re.Pattern[str]] = []
    for pattern in patterns or ():
        try:
            compiled.append(re.compile(pattern))
        except re.error as err:
            raise typer.BadParameter(f"invalid retryable error pattern {pattern!r}: {err}") from err
    return tuple(compiled)


def is_retryable(message: str, patterns: Iterable[re.Pattern[str]] | None) -> bool:
    """Return True if any pattern is found anywhere in *message*.

    An empty or missing pattern set never matches, so every failure is fatal
    unless retryable errors were configured explicitly.
    """
    if not patterns:
        return False
    return any(pattern.search(message) for pattern in patterns)


def error_text(err: BaseException) -> str:
    """Text used for classification: captured command output plus the message."""
    output = getattr(err, "output", "") or ""
    return f"{err}\n{output}" if output else str(err)
