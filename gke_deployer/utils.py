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


"""Helpers for running gcloud and kubectl."""

from __future__ import annotations

import subprocess
import threading
from collections.abc import Mapping, Sequence

import sh

from gke_deployer import logger
from gke_deployer.constants import CANCEL_POLL_INTERVAL_SECONDS, GCLOUD, KUBECTL, KUBECTL_TIMEOUT_SECONDS
from gke_deployer.errors import CommandError


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err


def gcloud(*args: str) -> str:
    """Run a short gcloud command and return its stdout.

    Raises:
        CommandError: If gcloud exits non-zero.
    """
    try:
        return str(sh.gcloud(*args, _err_to_out=True)).strip()
    except sh.ErrorReturnCode as err:
        output = err.stdout.decode(errors="replace")
        raise CommandError([GCLOUD, *args], err.exit_code, output) from err


def run_cancellable(
    args: Sequence[str],
    cancel: threading.Event | None = None,
    env: Mapping[str, str] | None = None,
    poll_interval: float = CANCEL_POLL_INTERVAL_SECONDS,
) -> str:
    """Run a long command, terminating it when *cancel* is set.

    Uses subprocess instead of sh because the process has to be stopped from
    outside while its combined output is still collected in full.

    Args:
        args: Full argument list, program first.
        cancel: Cancellation token shared with sibling operations, or None.
        env: Environment for the child process, or None to inherit.
        poll_interval: Seconds between cancellation checks.

    Returns:
        Combined stdout and stderr.

    Raises:
        CommandError: If the process exits non-zero, cannot be started, or is
            cancelled before or while running.
    """
    if cancel is not None and cancel.is_set():
        raise CommandError(args, None, "", cancelled=True)

    cancelled = False
    try:
        with subprocess.Popen(
            list(args),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            env=None if env is None else dict(env),
        ) as proc:
            while True:
                try:
                    output, _ = proc.communicate(timeout=poll_interval)
                    break
                except subprocess.TimeoutExpired:
                    if not cancelled and cancel is not None and cancel.is_set():
                        logger.info("cancelling %s", " ".join(args[:4]))
                        proc.terminate()
                        cancelled = True
    except OSError as exc:
        raise CommandError(args, None, str(exc)) from exc

    if proc.returncode != 0:
        raise CommandError(args, proc.returncode, output or "", cancelled=cancelled)
    return output or ""


def run_kubectl(args: list[str], env: Mapping[str, str] | None = None,
                timeout: int = KUBECTL_TIMEOUT_SECONDS) -> tuple[bool, str]:
    """Run a kubectl command via subprocess and return (success, combined output).

    Args:
        args: kubectl arguments (e.g. ``["get", "nodes", "-o=name"]``).
        env: Environment for kubectl, or None to inherit.
        timeout: Maximum seconds to wait for the command to complete.

    Returns:
        Tuple of (success, combined stdout and stderr).
    """
    try:
        result = subprocess.run(
            [KUBECTL, *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
            env=None if env is None else dict(env),
        )
        return result.returncode == 0, result.stdout
    except (subprocess.SubprocessError, OSError) as exc:
        return False, str(exc)
