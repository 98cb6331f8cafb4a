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


"""Create subcommands (clusters)."""

from __future__ import annotations

import typer

from gke_deployer import console
from gke_deployer.commands.common import (
    load_config,
    opt_cluster_name,
    opt_network,
    opt_num_clusters,
    opt_project,
    opt_region,
    opt_run_id,
    opt_zone,
)
from gke_deployer.config import display_config
from gke_deployer.orchestrator import Deployer

app = typer.Typer(help="Create infrastructure resources.")


@app.command("clusters")
def clusters(
    project: list[str] | None = opt_project,
    cluster_name: list[str] | None = opt_cluster_name,
    num_clusters: int | None = opt_num_clusters,
    run_id: str | None = opt_run_id,
    region: list[str] | None = opt_region,
    zone: list[str] | None = opt_zone,
    network: str | None = opt_network,
    machine_type: str | None = typer.Option(None, "--machine-type", help="Node machine type"),
    num_nodes: int | None = typer.Option(None, "--num-nodes", help="Nodes per cluster"),
    image_type: str | None = typer.Option(None, "--image-type", help="Node image type"),
    version: str | None = typer.Option(None, "--version", help="Cluster version or 'latest'"),
    release_channel: str | None = typer.Option(None, "--release-channel", help="GKE release channel"),
    autopilot: bool | None = typer.Option(
        None, "--autopilot/--no-autopilot", help="Create Autopilot clusters"),
    workload_identity: bool | None = typer.Option(
        None, "--workload-identity/--no-workload-identity", help="Enable workload identity"),
    private_cluster_access_level: str | None = typer.Option(
        None, "--private-cluster-access-level", help="no, limited or unrestricted"),
    private_cluster_master_ip_range: list[str] | None = typer.Option(
        None, "--private-cluster-master-ip-range", help="Master CIDR, one per cluster; repeatable"),
    gcloud_command_group: str | None = typer.Option(
        None, "--gcloud-command-group", help="gcloud command group, e.g. beta"),
    gcloud_extra_flags: str | None = typer.Option(
        None, "--gcloud-extra-flags", help="Extra flags for the create command"),
    create_command: str | None = typer.Option(
        None, "--create-command", help="Full create command override"),
    retryable_error_pattern: list[str] | None = typer.Option(
        None, "--retryable-error-pattern", help="Regex marking a failure retryable; repeatable"),
    retry_known_errors: bool | None = typer.Option(
        None, "--retry-known-errors/--no-retry-known-errors", help="Also retry known transient GKE errors"),
    max_in_flight: int | None = typer.Option(
        None, "--max-in-flight", min=1, help="Maximum concurrent cluster creations"),
    retry_wait: float | None = typer.Option(
        None, "--retry-wait", min=0, help="Seconds to wait before the next location"),
    repo_root: str | None = typer.Option(
        None, "--repo-root", help="Kubernetes source tree used to dump cluster logs"),
    artifacts: str | None = typer.Option(
        None, "--artifacts", help="Directory for dumped cluster logs"),
) -> None:
    """Create all clusters, retrying at the next location on retryable errors."""
    cfg = load_config(
        projects=project,
        cluster_names=cluster_name,
        num_clusters=num_clusters,
        run_id=run_id,
        regions=region,
        zones=zone,
        network=network,
        machine_type=machine_type,
        num_nodes=num_nodes,
        image_type=image_type,
        version=version,
        release_channel=release_channel,
        autopilot=autopilot,
        workload_identity=workload_identity,
        private_cluster_access_level=private_cluster_access_level,
        private_cluster_master_ip_ranges=private_cluster_master_ip_range,
        gcloud_command_group=gcloud_command_group,
        gcloud_extra_flags=gcloud_extra_flags,
        create_command=create_command,
        retryable_error_patterns=retryable_error_pattern,
        retry_known_errors=retry_known_errors,
        max_in_flight=max_in_flight,
        retry_wait_seconds=retry_wait,
        repo_root=repo_root,
        artifacts=artifacts,
    )
    display_config(cfg)

    deployer = Deployer(cfg)
    location = deployer.up()
    console.print(f"[green]\u2705 All clusters are up in {location.name}[/green]")
    typer.echo(deployer.kubeconfig_path)
