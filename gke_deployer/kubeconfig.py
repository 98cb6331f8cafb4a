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


"""Per-cluster kubeconfig files for the test phase."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

from rich.panel import Panel

from gke_deployer import console
from gke_deployer.cluster import get_credentials
from gke_deployer.config import Topology
from gke_deployer.constants import DEFAULT_KUBECONFIG_DIR_PREFIX, KUBECONFIG_ENV
from gke_deployer.location import Location


def kubeconfig_filename(tmpdir: Path, project: str, cluster_name: str) -> Path:
    return tmpdir / f"kubecfg-{project}-{cluster_name}"


def materialize_kubeconfigs(
    topology: Topology,
    location: Location,
    tmpdir: Path | None = None,
) -> dict[tuple[str, str], Path]:
    """Fetch credentials for every cluster into its own kubeconfig file.

    ``KUBECONFIG`` is pointed at each file right before its credential fetch,
    so gcloud writes to that file only.

    Args:
        topology: Project to clusters mapping.
        location: Location the clusters were created at.
        tmpdir: Directory for the files, or None for a fresh temp directory.

    Returns:
        Mapping of (project, cluster name) to kubeconfig path, in topology order.
    """
    console.print(Panel.fit("Fetching cluster credentials", style="bold blue"))
    if tmpdir is None:
        tmpdir = Path(tempfile.mkdtemp(prefix=DEFAULT_KUBECONFIG_DIR_PREFIX))

    files: dict[tuple[str, str], Path] = {}
    for project, clusters in topology.items():
        for cluster in clusters:
            path = kubeconfig_filename(tmpdir, project, cluster.name)
            os.environ[KUBECONFIG_ENV] = str(path)
            get_credentials(project, cluster.name, location)
            files[(project, cluster.name)] = path
            console.print(f"[green]  \u2713 {project}/{cluster.name} -> {path}[/green]")
    return files


def join_kubeconfigs(paths: Iterable[Path | str]) -> str:
    """Join kubeconfig paths into one ``KUBECONFIG`` value."""
    return os.pathsep.join(str(path) for path in paths)
