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


"""Configuration model, cluster topology, and flag validation/display."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import typer
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from gke_deployer import console, logger
from gke_deployer.classifier import compile_patterns
from gke_deployer.constants import (
    CLUSTER_NAME_MAX_ID_LENGTH,
    CLUSTER_NAME_PREFIX,
    DEFAULT_IMAGE_TYPE,
    DEFAULT_MACHINE_TYPE,
    DEFAULT_NETWORK,
    DEFAULT_NUM_CLUSTERS,
    DEFAULT_NUM_NODES,
    KNOWN_RETRYABLE_ERROR_PATTERNS,
    LATEST_VERSION,
    PRIVATE_ACCESS_LEVELS,
    RETRY_WAIT_SECONDS,
    VERSION_PATTERN,
)


# ============================================================================
# Configuration classes
# ============================================================================

class DeployerConfig(BaseSettings):
    """GKE deployment configuration, auto-loaded from GKE_* env vars.

    List values read from the environment are JSON encoded, e.g.
    ``GKE_REGIONS='["us-central1", "us-east1"]'``.

    Attributes:
        projects: GCP projects to create clusters in; the first one also hosts
            shared networking.
        cluster_names: Cluster entries, ``name`` or ``name:project-index``.
        num_clusters: Number of clusters to generate names for when no
            explicit cluster names are given.
        run_id: Unique run identifier embedded in generated cluster names.
        regions: Candidate regions in retry order.
        zones: Candidate zones in retry order.
        network: VPC network name.
        machine_type: Node machine type.
        num_nodes: Nodes per cluster.
        image_type: Node image type.
        version: Cluster version, ``latest`` or empty for the server default.
        release_channel: GKE release channel, empty for none.
        autopilot: Whether to create Autopilot clusters.
        workload_identity: Whether to enable workload identity.
        private_cluster_access_level: ``no``, ``limited``, ``unrestricted`` or
            empty for public clusters.
        private_cluster_master_ip_ranges: Master CIDRs, one per cluster.
        gcloud_command_group: gcloud command group such as ``beta``.
        gcloud_extra_flags: Extra flags appended to the create command.
        create_command: Full create command override.
        retryable_error_patterns: Regular expressions marking retryable failures.
        retry_known_errors: Also retry on the known GKE transient errors.
        max_in_flight: Maximum concurrent cluster creations, None for unbounded.
        retry_wait_seconds: Pause between attempts.
        repo_root: Kubernetes source tree holding the log-dump script.
        artifacts: Directory receiving dumped cluster logs.
    """

    model_config = SettingsConfigDict(env_prefix="GKE_", extra="ignore")

    projects: list[str] = Field(default_factory=list)
    cluster_names: list[str] = Field(default_factory=list)
    num_clusters: int = Field(default=DEFAULT_NUM_CLUSTERS, ge=1, le=99)
    run_id: str = ""
    regions: list[str] = Field(default_factory=list)
    zones: list[str] = Field(default_factory=list)
    network: str = DEFAULT_NETWORK
    machine_type: str = DEFAULT_MACHINE_TYPE
    num_nodes: int = DEFAULT_NUM_NODES
    image_type: str = DEFAULT_IMAGE_TYPE
    version: str = LATEST_VERSION
    release_channel: str = ""
    autopilot: bool = False
    workload_identity: bool = False
    private_cluster_access_level: str = ""
    private_cluster_master_ip_ranges: list[str] = Field(default_factory=list)
    gcloud_command_group: str = ""
    gcloud_extra_flags: str = ""
    create_command: str = ""
    retryable_error_patterns: list[str] = Field(default_factory=list)
    retry_known_errors: bool = False
    max_in_flight: int | None = Field(default=None, ge=1)
    retry_wait_seconds: float = Field(default=RETRY_WAIT_SECONDS, ge=0)
    repo_root: str = ""
    artifacts: str = "_artifacts"

    def effective_retryable_patterns(self) -> list[str]:
        """Configured patterns plus the known GKE ones when enabled."""
        patterns = list(self.retryable_error_patterns)
        if self.retry_known_errors:
            patterns.extend(p for p in KNOWN_RETRYABLE_ERROR_PATTERNS if p not in patterns)
        return patterns


# ============================================================================
# Topology
# ============================================================================

@dataclass(frozen=True)
class ClusterSpec:
    """Everything needed to create one cluster.

    Attributes:
        name: Cluster name, unique within its project.
        index: Position across all projects, selects the master CIDR.
        machine_type: Node machine type.
        num_nodes: Nodes per cluster.
        image_type: Node image type.
        version: Cluster version or ``latest``.
        release_channel: Release channel, empty for none.
        workload_identity: Whether workload identity is enabled.
        private_access_level: Private cluster access level, empty for public.
        master_ipv4_cidr: Master CIDR for private clusters, or None.
    """

    name: str
    index: int = 0
    machine_type: str = DEFAULT_MACHINE_TYPE
    num_nodes: int = DEFAULT_NUM_NODES
    image_type: str = DEFAULT_IMAGE_TYPE
    version: str = LATEST_VERSION
    release_channel: str = ""
    workload_identity: bool = False
    private_access_level: str = ""
    master_ipv4_cidr: str | None = None


Topology = dict[str, tuple[ClusterSpec, ...]]


def _parse_cluster_entry(entry: str, num_projects: int) -> tuple[str, int]:
    """Split ``name[:project-index]`` into its parts."""
    name, sep, raw_index = entry.partition(":")
    if not sep:
        return name, 0
    try:
        project_index = int(raw_index)
    except ValueError as err:
        raise typer.BadParameter(f"invalid project index in cluster entry {entry!r}") from err
    if not 0 <= project_index < num_projects:
        raise typer.BadParameter(
            f"cluster entry {entry!r} refers to project {project_index}, "
            f"but only {num_projects} project(s) are configured"
        )
    return name, project_index


def build_topology(cfg: DeployerConfig) -> Topology:
    """Map every project to the ordered clusters that must exist in it.

    Args:
        cfg: Resolved configuration with cluster names already set.

    Returns:
        Read-only mapping of project id to cluster specs.

    Raises:
        typer.BadParameter: If a cluster name repeats within a project.
    """
    layout: dict[str, list[ClusterSpec]] = {project: [] for project in cfg.projects}
    for index, entry in enumerate(cfg.cluster_names):
        name, project_index = _parse_cluster_entry(entry, len(cfg.projects))
        project = cfg.projects[project_index]
        if any(existing.name == name for existing in layout[project]):
            raise typer.BadParameter(f"cluster name {name!r} is used twice in project {project!r}")
        master_cidr = None
        if cfg.private_cluster_access_level:
            master_cidr = cfg.private_cluster_master_ip_ranges[index]
        layout[project].append(ClusterSpec(
            name=name,
            index=index,
            machine_type=cfg.machine_type,
            num_nodes=cfg.num_nodes,
            image_type=cfg.image_type,
            version=cfg.version,
            release_channel=cfg.release_channel,
            workload_identity=cfg.workload_identity,
            private_access_level=cfg.private_cluster_access_level,
            master_ipv4_cidr=master_cidr,
        ))
    return {project: tuple(clusters) for project, clusters in layout.items()}


# ============================================================================
# Config resolution
# ============================================================================

def generate_cluster_names(num_clusters: int, uid: str) -> list[str]:
    """Generate cluster names that start with a letter and fit in 40 characters.

    Args:
        num_clusters: Number of names to generate.
        uid: Run identifier; only its first 33 characters are used.

    Returns:
        Names of the form ``kt2-<uid>-<n>`` for n in 1..num_clusters.
    """
    prefix = CLUSTER_NAME_PREFIX
    if uid:
        prefix += uid[:CLUSTER_NAME_MAX_ID_LENGTH] + "-"
    return [f"{prefix}{i}" for i in range(1, num_clusters + 1)]


def validate_version(version: str) -> None:
    """Accept empty, ``latest`` or a dotted Kubernetes version.

    Raises:
        typer.BadParameter: If the version is not recognized.
    """
    if version in ("", LATEST_VERSION):
        return
    if not re.search(VERSION_PATTERN, version):
        raise typer.BadParameter(f"unknown version {version!r}")


def _validate_location_flags(cfg: DeployerConfig) -> None:
    if not cfg.regions and not cfg.zones:
        raise typer.BadParameter("at least one --region or --zone must be set")
    if cfg.regions and cfg.zones:
        logger.warning("both regions and zones are set; zones are used as the location directive")
    if cfg.autopilot and cfg.zones:
        raise typer.BadParameter("autopilot clusters are regional, use --region instead of --zone")


def _validate_private_cluster_flags(cfg: DeployerConfig, num_clusters: int) -> None:
    level = cfg.private_cluster_access_level
    if not level:
        return
    if level not in PRIVATE_ACCESS_LEVELS:
        raise typer.BadParameter(
            f"--private-cluster-access-level must be one of {', '.join(PRIVATE_ACCESS_LEVELS)}, got {level!r}"
        )
    if len(cfg.private_cluster_master_ip_ranges) < num_clusters:
        raise typer.BadParameter(
            f"--private-cluster-master-ip-range needs one CIDR per cluster "
            f"({num_clusters}), got {len(cfg.private_cluster_master_ip_ranges)}"
        )


def resolve_config(cfg: DeployerConfig) -> DeployerConfig:
    """Validate flags and fill in generated cluster names.

    Validation happens before any cloud-side call is made.

    Args:
        cfg: Configuration merged from CLI options, GKE_* env vars and defaults.

    Returns:
        A copy of *cfg* with ``cluster_names`` populated.

    Raises:
        typer.BadParameter: If the flag combination is invalid.
    """
    if not cfg.projects:
        raise typer.BadParameter("at least one --project must be set")
    duplicates = sorted({p for p in cfg.projects if cfg.projects.count(p) > 1})
    if duplicates:
        raise typer.BadParameter(f"--project repeated: {', '.join(duplicates)}")

    if cfg.cluster_names:
        logger.info("explicit cluster names specified, ignoring --num-clusters")
    else:
        if len(cfg.projects) > 1:
            raise typer.BadParameter("explicit --cluster-name must be set for multi-project profile")
        cfg = cfg.model_copy(update={"cluster_names": generate_cluster_names(cfg.num_clusters, cfg.run_id)})

    _validate_location_flags(cfg)
    _validate_private_cluster_flags(cfg, len(cfg.cluster_names))
    if cfg.num_nodes <= 0:
        raise typer.BadParameter("--num-nodes must be larger than 0")
    validate_version(cfg.version)
    compile_patterns(cfg.effective_retryable_patterns())
    return cfg


def apply_overrides(cfg: DeployerConfig, **overrides: Any) -> DeployerConfig:
    """Apply CLI overrides on top of env vars and defaults.

    Resolution priority: CLI arguments > GKE_* environment variables > defaults.
    None and empty lists mean the option was not given.

    Args:
        cfg: Configuration loaded from the environment.
        **overrides: Field name to CLI value.

    Returns:
        Updated copy of *cfg*, or *cfg* itself when nothing was overridden.
    """
    update = {key: value for key, value in overrides.items() if value is not None and value != []}
    if not update:
        return cfg
    return cfg.model_copy(update=update)


# ============================================================================
# Display
# ============================================================================

def display_config(cfg: DeployerConfig) -> None:
    """Print the resolved configuration.

    Args:
        cfg: Resolved configuration.
    """
    console.print(Panel.fit("Configuration", style="bold blue"))
    console.print("[yellow]Topology:[/yellow]")
    console.print(f"  projects        : {', '.join(cfg.projects)}")
    console.print(f"  clusters        : {', '.join(cfg.cluster_names)}")
    console.print(f"  network         : {cfg.network}")
    console.print("[yellow]Locations (retry order):[/yellow]")
    console.print(f"  regions         : {', '.join(cfg.regions) or '-'}")
    console.print(f"  zones           : {', '.join(cfg.zones) or '-'}")
    console.print("[yellow]Clusters:[/yellow]")
    if cfg.autopilot:
        console.print("  mode            : autopilot")
    else:
        console.print(f"  machine_type    : {cfg.machine_type}")
        console.print(f"  num_nodes       : {cfg.num_nodes}")
        console.print(f"  image_type      : {cfg.image_type}")
    console.print(f"  version         : {cfg.version or '(server default)'}")
    console.print(f"  release_channel : {cfg.release_channel or '-'}")
    if cfg.private_cluster_access_level:
        console.print(f"  private access  : {cfg.private_cluster_access_level}")
    patterns = cfg.effective_retryable_patterns()
    console.print("[yellow]Retries:[/yellow]")
    console.print(f"  retryable errors: {len(patterns)} pattern(s)")
    console.print(f"  max_in_flight   : {cfg.max_in_flight or 'unbounded'}")
