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


"""Delete subcommands (clusters)."""

from __future__ import annotations

import typer

from gke_deployer.commands.common import (
    load_config,
    location_for_attempt,
    opt_attempt,
    opt_cluster_name,
    opt_network,
    opt_num_clusters,
    opt_project,
    opt_region,
    opt_run_id,
    opt_zone,
)
from gke_deployer.orchestrator import Deployer

app = typer.Typer(help="Delete infrastructure resources.")


@app.command("clusters")
def clusters(
    project: list[str] | None = opt_project,
    cluster_name: list[str] | None = opt_cluster_name,
    num_clusters: int | None = opt_num_clusters,
    run_id: str | None = opt_run_id,
    region: list[str] | None = opt_region,
    zone: list[str] | None = opt_zone,
    network: str | None = opt_network,
    attempt: int = opt_attempt,
) -> None:
    """Delete all clusters and the networking created for them."""
    cfg = load_config(
        projects=project,
        cluster_names=cluster_name,
        num_clusters=num_clusters,
        run_id=run_id,
        regions=region,
        zones=zone,
        network=network,
    )
    location = location_for_attempt(cfg, attempt)
    Deployer(cfg).down(location)
