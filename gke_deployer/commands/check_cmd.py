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


"""Check subcommands (up, kubeconfig, names)."""

from __future__ import annotations

import typer

from gke_deployer import console
from gke_deployer.commands.common import (
    load_config,
    location_for_attempt,
    opt_attempt,
    opt_cluster_name,
    opt_num_clusters,
    opt_project,
    opt_region,
    opt_run_id,
    opt_zone,
)
from gke_deployer.config import generate_cluster_names
from gke_deployer.constants import DEFAULT_NUM_CLUSTERS
from gke_deployer.orchestrator import Deployer

app = typer.Typer(help="Inspect existing clusters.")


@app.command()
def up(
    project: list[str] | None = opt_project,
    cluster_name: list[str] | None = opt_cluster_name,
    num_clusters: int | None = opt_num_clusters,
    run_id: str | None = opt_run_id,
    region: list[str] | None = opt_region,
    zone: list[str] | None = opt_zone,
    attempt: int = opt_attempt,
) -> None:
    """Exit 0 if every cluster reports nodes."""
    cfg = load_config(
        projects=project, cluster_names=cluster_name, num_clusters=num_clusters,
        run_id=run_id, regions=region, zones=zone,
    )
    location = location_for_attempt(cfg, attempt)
    Deployer(cfg).is_up(location)
    console.print("[green]\u2705 All clusters are up[/green]")


@app.command()
def kubeconfig(
    project: list[str] | None = opt_project,
    cluster_name: list[str] | None = opt_cluster_name,
    num_clusters: int | None = opt_num_clusters,
    run_id: str | None = opt_run_id,
    region: list[str] | None = opt_region,
    zone: list[str] | None = opt_zone,
    attempt: int = opt_attempt,
) -> None:
    """Fetch credentials and print the KUBECONFIG value."""
    cfg = load_config(
        projects=project, cluster_names=cluster_name, num_clusters=num_clusters,
        run_id=run_id, regions=region, zones=zone,
    )
    location = location_for_attempt(cfg, attempt)
    typer.echo(Deployer(cfg).kubeconfig(location))


@app.command()
def names(
    num_clusters: int = typer.Option(DEFAULT_NUM_CLUSTERS, "--num-clusters", min=1, max=99),
    run_id: str = typer.Option("", "--run-id", help="Run identifier embedded in the names"),
) -> None:
    """Print the cluster names generated for a run."""
    for name in generate_cluster_names(num_clusters, run_id):
        typer.echo(name)
