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


"""Multi-cluster creation with location fallback and rollback.

Each attempt creates every cluster of the topology at one candidate location.
A failure whose text matches a retryable pattern rolls back what the attempt
created and moves on to the next location; any other failure ends the run.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum

from rich.panel import Panel
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_fixed

from gke_deployer import console, logger
from gke_deployer.classifier import error_text, is_retryable
from gke_deployer.config import ClusterSpec, Topology
from gke_deployer.errors import FatalCreationError, RetriesExhaustedError
from gke_deployer.location import Location, select_location, total_attempts
from gke_deployer.parallel import FanOutExecutor, Operation


class CreationState(Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED_FATAL = "failed-fatal"
    FAILED_RETRYABLE_EXHAUSTED = "failed-retryable-exhausted"


@dataclass
class AttemptRecord:
    """Resources created during one attempt, written concurrently by its tasks.

    Attributes:
        index: Zero-based attempt index.
        location: Location used by the attempt.
    """

    index: int
    location: Location
    _clusters: list[tuple[str, str]] = field(default_factory=list, repr=False)
    _subnets: list[str] = field(default_factory=list, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_cluster(self, project: str, name: str) -> None:
        with self._lock:
            self._clusters.append((project, name))

    def record_subnet(self, name: str) -> None:
        with self._lock:
            self._subnets.append(name)

    @property
    def clusters(self) -> list[tuple[str, str]]:
        """Created (project, cluster name) pairs."""
        with self._lock:
            return list(self._clusters)

    @property
    def subnets(self) -> list[str]:
        with self._lock:
            return list(self._subnets)


CreateFn = Callable[[str, ClusterSpec, Location, threading.Event], None]
PrepareFn = Callable[[AttemptRecord], None]
RollbackFn = Callable[[AttemptRecord], None]


class RetryCoordinator:
    """Create all clusters, falling back to the next location on retryable errors.

    Args:
        topology: Project to clusters mapping.
        regions: Candidate regions in retry order.
        zones: Candidate zones in retry order.
        patterns: Compiled retryable error patterns; empty means never retry.
        create: Creates one cluster; raises on failure.
        prepare_attempt: Provisions attempt-scoped resources such as subnets
            and records them on the attempt, or None.
        rollback: Deletes what an attempt recorded, or None.
        executor: Fan-out executor for cluster creation.
        retry_wait_seconds: Pause before the next attempt.
    """

    def __init__(
        self,
        topology: Topology,
        regions: Sequence[str],
        zones: Sequence[str],
        patterns: Sequence[re.Pattern[str]],
        create: CreateFn,
        prepare_attempt: PrepareFn | None = None,
        rollback: RollbackFn | None = None,
        executor: FanOutExecutor | None = None,
        retry_wait_seconds: float = 0,
    ) -> None:
        self.topology = topology
        self.regions = list(regions)
        self.zones = list(zones)
        self.patterns = tuple(patterns)
        self.create = create
        self.prepare_attempt = prepare_attempt
        self.rollback = rollback
        self.executor = executor or FanOutExecutor()
        self.retry_wait_seconds = retry_wait_seconds

        self.state = CreationState.ATTEMPTING
        self.attempts: list[AttemptRecord] = []
        self.rollbacks: list[Future] = []
        self._rollback_pool = ThreadPoolExecutor(thread_name_prefix="rollback")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def total_attempts(self) -> int:
        return total_attempts(self.regions, self.zones)

    def run(self) -> Location:
        """Run attempts until one succeeds or no retry is possible.

        Returns:
            The location every cluster was created at.

        Raises:
            FatalCreationError: If a failure matches no retryable pattern.
            RetriesExhaustedError: If every location failed retryably.
        """
        if self.total_attempts == 0:
            raise ValueError("at least one region or zone is required")
        retrying = Retrying(
            stop=stop_after_attempt(self.total_attempts),
            wait=wait_fixed(self.retry_wait_seconds),
            retry=retry_if_exception(self._is_retryable),
            before_sleep=self._rollback_failed_attempt,
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._run_attempt(attempt.retry_state.attempt_number - 1)
        except Exception as err:
            attempts = len(self.attempts)
            if self._is_retryable(err):
                self.state = CreationState.FAILED_RETRYABLE_EXHAUSTED
                raise RetriesExhaustedError(
                    f"error creating clusters: all {attempts} location(s) failed, last error: {err}",
                    attempts, err,
                ) from err
            self.state = CreationState.FAILED_FATAL
            raise FatalCreationError(f"error creating clusters: {err}", attempts, err) from err
        finally:
            # Rollbacks already submitted keep running.
            self._rollback_pool.shutdown(wait=False)

        self.state = CreationState.SUCCEEDED
        return self.attempts[-1].location

    def wait_for_rollbacks(self, timeout: float | None = None) -> None:
        """Block until every rollback started so far has finished."""
        wait(self.rollbacks, timeout=timeout)

    # ------------------------------------------------------------------
    # Attempt handling
    # ------------------------------------------------------------------

    def _is_retryable(self, err: BaseException) -> bool:
        return is_retryable(error_text(err), self.patterns)

    def _operation(self, record: AttemptRecord, project: str, cluster: ClusterSpec) -> Operation:
        def _create(cancel: threading.Event) -> None:
            self.create(project, cluster, record.location, cancel)
            record.record_cluster(project, cluster.name)
        return _create

    def _run_attempt(self, index: int) -> None:
        location = select_location(self.regions, self.zones, index)
        record = AttemptRecord(index=index, location=location)
        self.attempts.append(record)
        console.print(Panel.fit(
            f"Creating clusters in {location.name} (attempt {index + 1}/{self.total_attempts})",
            style="bold blue",
        ))

        if self.prepare_attempt is not None:
            self.prepare_attempt(record)

        operations = {
            f"{project}/{cluster.name}": self._operation(record, project, cluster)
            for project, clusters in self.topology.items()
            for cluster in clusters
        }
        err = self.executor.run(operations)
        if err is not None:
            raise err

    def _rollback_failed_attempt(self, retry_state: RetryCallState) -> None:
        record = self.attempts[-1]
        err = retry_state.outcome.exception() if retry_state.outcome else None
        console.print(
            f"[yellow]\u26a0\ufe0f  Attempt {record.index + 1} at {record.location.name} failed with a "
            f"retryable error, rolling back: {err}[/yellow]"
        )
        future = self._rollback_pool.submit(self._run_rollback, record)
        self.rollbacks.append(future)

        next_location = select_location(self.regions, self.zones, record.index + 1)
        if self._reuses_resources(record, next_location):
            logger.info("next attempt reuses resources of %s, waiting for rollback", record.location.name)
            future.result()

    @staticmethod
    def _reuses_resources(record: AttemptRecord, next_location: Location) -> bool:
        """Whether the next attempt creates names the rollback of *record* still deletes.

        Cluster names repeat at the same location; subnet names repeat
        anywhere in the same region.
        """
        if next_location.flag == record.location.flag:
            return True
        return bool(record.subnets) and next_location.subnet_region == record.location.subnet_region

    def _run_rollback(self, record: AttemptRecord) -> None:
        if self.rollback is None:
            return
        try:
            self.rollback(record)
        except Exception as err:
            logger.warning("rollback of attempt %d at %s failed: %s", record.index + 1, record.location.name, err)
