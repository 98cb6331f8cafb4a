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


"""Options shared by several subcommands."""

from __future__ import annotations

import typer

from gke_deployer.config import DeployerConfig, apply_overrides, resolve_config
from gke_deployer.location import Location, select_location

opt_project = typer.Option(
    None, "--project", "-p", help="GCP project, repeat for multi-project (first one hosts the network)")
opt_cluster_name = typer.Option(
    None, "--cluster-name", "-c", help="Cluster name, or name:project-index; repeatable")
opt_num_clusters = typer.Option(
    None, "--num-clusters", help="Clusters to generate names for when --cluster-name is not set")
opt_run_id = typer.Option(
    None, "--run-id", help="Run identifier embedded in generated cluster names")
opt_region = typer.Option(
    None, "--region", help="Candidate region, repeat to give retry order")
opt_zone = typer.Option(
    None, "--zone", help="Candidate zone, repeat to give retry order")
opt_network = typer.Option(
    None, "--network", help="VPC network name")
opt_attempt = typer.Option(
    0, "--attempt", min=0, help="Which candidate location the clusters were created at (0-based)")


def load_config(**overrides) -> DeployerConfig:
    """Merge CLI overrides with GKE_* env vars and validate the result."""
    return resolve_config(apply_overrides(DeployerConfig(), **overrides))


def location_for_attempt(cfg: DeployerConfig, attempt: int) -> Location:
    """Location of a given attempt, rejecting indexes past the candidate lists."""
    try:
        return select_location(cfg.regions, cfg.zones, attempt)
    except ValueError as err:
        raise typer.BadParameter(str(err), param_hint="--attempt") from err
