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


"""Cluster log dumping at the end of a run."""

from __future__ import annotations

import os
from pathlib import Path

import sh
from rich.panel import Panel

from gke_deployer import console
from gke_deployer.constants import CLUSTER_LOGS_DIR, KUBECONFIG_ENV, REL_LOG_DUMP_SCRIPT


def dump_cluster_logs(repo_root: str | Path, artifacts: str | Path, kubeconfig: str = "") -> Path:
    """Run the log-dump script from the Kubernetes source tree.

    Args:
        repo_root: Kubernetes source tree holding ``cluster/log-dump``.
        artifacts: Artifacts directory; logs land in its ``cluster-logs`` child.
        kubeconfig: ``KUBECONFIG`` value for the script, empty to inherit.

    Returns:
        Directory the logs were written to.

    Raises:
        RuntimeError: If the script is missing.
        sh.ErrorReturnCode: If the script fails.
    """
    script = Path(repo_root) / REL_LOG_DUMP_SCRIPT
    if not script.exists():
        raise RuntimeError(f"log dump script not found at {script}")
    logs_dir = Path(artifacts) / CLUSTER_LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    env = dict(os.environ)
    if kubeconfig:
        env[KUBECONFIG_ENV] = kubeconfig
    console.print(Panel.fit("Dumping cluster logs", style="bold blue"))
    sh.bash(str(script), str(logs_dir), _env=env, _cwd=str(repo_root))
    console.print(f"[green]\u2705 Cluster logs written to {logs_dir}[/green]")
    return logs_dir
