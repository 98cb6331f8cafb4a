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


"""Candidate location selection for cluster creation attempts.

Attempt ``i`` uses ``regions[i]`` and ``zones[i]``. When one list is shorter
than the other, attempts past its end keep using its last element, so every
attempt index in ``range(total_attempts(regions, zones))`` maps to exactly one
location. The zone, when present, is the location directive passed to gcloud.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class Location:
    """A single region- or zone-scoped location.

    Attributes:
        region: Region chosen for the attempt, or None if only zones are configured.
        zone: Zone chosen for the attempt, or None if only regions are configured.
    """

    region: str | None = None
    zone: str | None = None

    def __post_init__(self) -> None:
        if not self.region and not self.zone:
            raise ValueError("a location needs a region or a zone")

    @property
    def flag(self) -> str:
        """gcloud location flag, zone-scoped when a zone is set."""
        if self.zone:
            return f"--zone={self.zone}"
        return f"--region={self.region}"

    @property
    def name(self) -> str:
        return self.zone or self.region  # type: ignore[return-value]

    @property
    def subnet_region(self) -> str:
        """Region that hosts subnets for this location."""
        if self.zone:
            region, sep, _ = self.zone.rpartition("-")
            if sep:
                return region
        return self.region or self.zone  # type: ignore[return-value]


def total_attempts(regions: Sequence[str], zones: Sequence[str]) -> int:
    """Number of attempts available: the length of the longer list."""
    return max(len(regions), len(zones))


def _clamped(values: Sequence[str], attempt: int) -> str | None:
    if not values:
        return None
    return values[min(attempt, len(values) - 1)]


def select_location(regions: Sequence[str], zones: Sequence[str], attempt: int) -> Location:
    """Resolve the location used by *attempt*.

    Args:
        regions: Candidate regions in retry order.
        zones: Candidate zones in retry order.
        attempt: Zero-based attempt index.

    Returns:
        The location for this attempt.

    Raises:
        ValueError: If no candidates exist or *attempt* is out of range.
    """
    total = total_attempts(regions, zones)
    if total == 0:
        raise ValueError("at least one region or zone is required")
    if not 0 <= attempt < total:
        raise ValueError(f"attempt {attempt} out of range, only {total} location(s) configured")
    return Location(region=_clamped(regions, attempt), zone=_clamped(zones, attempt))
