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


"""Exception types raised while creating, verifying and tearing down clusters."""

from __future__ import annotations

from collections.abc import Sequence


class CommandError(RuntimeError):
    """An external command exited non-zero or was cancelled.

    Attributes:
        command: Full argument list that was executed.
        exit_code: Process exit status, negative when killed by a signal.
        output: Combined stdout and stderr of the process.
        cancelled: Whether the command was stopped by a cancellation request.
    """

    def __init__(
        self,
        command: Sequence[str],
        exit_code: int | None,
        output: str,
        cancelled: bool = False,
    ) -> None:
        self.command = list(command)
        self.exit_code = exit_code
        self.output = output
        self.cancelled = cancelled
        if cancelled:
            summary = f"'{' '.join(self.command[:4])} ...' was cancelled"
        else:
            summary = f"'{' '.join(self.command[:4])} ...' exited with status {exit_code}"
        super().__init__(f"{summary}: {output.strip()}" if output.strip() else summary)


class ClusterCreationError(RuntimeError):
    """Cluster creation failed.

    Attributes:
        attempts: Number of attempts made before giving up.
        last_error: The error from the final attempt.
    """

    def __init__(self, message: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class FatalCreationError(ClusterCreationError):
    """Creation failed with an error that matches no retryable pattern."""


class RetriesExhaustedError(ClusterCreationError):
    """Every candidate location failed with a retryable error."""


class VerificationError(RuntimeError):
    """A cluster readiness check failed.

    The captured ``output`` is kept separately so test reporting can attach
    it to a JUnit failure.
    """

    def __init__(self, message: str, output: str) -> None:
        super().__init__(message)
        self.output = output
