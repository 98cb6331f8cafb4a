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


"""Concurrent fan-out of operations under a shared cancellation scope."""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed

from gke_deployer import console, logger

Operation = Callable[[threading.Event], None]


class FanOutExecutor:
    """Run a batch of operations in parallel and report the first failure.

    Every operation receives the same cancellation event. The first failure
    sets it so siblings can stop early; cancellation is cooperative and
    operations that ignore it simply run to completion. ``run`` always waits
    for every operation to finish before returning.

    Attributes:
        max_workers: Maximum operations in flight, or None for one thread per
            operation.
    """

    def __init__(self, max_workers: int | None = None) -> None:
        self.max_workers = max_workers

    def run(self, operations: Mapping[str, Operation]) -> BaseException | None:
        """Run *operations* concurrently.

        Args:
            operations: Mapping of task name to operation.

        Returns:
            The first exception raised by any operation, or None if all
            succeeded.
        """
        if not operations:
            return None

        cancel = threading.Event()
        outputs: dict[str, str] = {}
        lock = threading.Lock()

        def _run_task(name: str, fn: Operation) -> None:
            try:
                with console.buffered() as buf:
                    fn(cancel)
            finally:
                with lock:
                    outputs[name] = buf.getvalue()

        first_error: BaseException | None = None
        width = min(self.max_workers or len(operations), len(operations))
        with ThreadPoolExecutor(max_workers=width, thread_name_prefix="fan-out") as executor:
            futures = {executor.submit(_run_task, name, fn): name for name, fn in operations.items()}
            for future in as_completed(futures):
                err = future.exception()
                if err is None:
                    continue
                if first_error is None:
                    first_error = err
                    cancel.set()
                    logger.info("%s failed, cancelling remaining operations", futures[future])
                else:
                    logger.debug("%s failed after cancellation: %s", futures[future], err)

        for name in operations:
            if outputs.get(name):
                console.print(outputs[name], end="")
        return first_error
