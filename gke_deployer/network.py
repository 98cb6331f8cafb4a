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


"""VPC network, subnet, shared-VPC and firewall provisioning."""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Sequence

from rich.panel import Panel

from gke_deployer import console, logger
from gke_deployer.constants import (
    DEFAULT_NETWORK,
    FIREWALL_ALLOW,
    FIREWALL_SOURCE_RANGES,
    PRIVATE_ACCESS_LIMITED,
    PRIVATE_ACCESS_NO,
    PRIVATE_ACCESS_UNRESTRICTED,
    REQUIRED_SERVICES,
    SUBNET_POD_RANGE,
    SUBNET_PRIMARY_RANGE,
    SUBNET_SERVICES_RANGE,
)
from gke_deployer.errors import CommandError
from gke_deployer.location import Location
from gke_deployer.utils import gcloud


# ============================================================================
# Naming and argument helpers
# ============================================================================

def host_project(projects: Sequence[str]) -> str:
    """The project that owns the network; the first configured project."""
    return projects[0]


def is_shared_vpc(projects: Sequence[str]) -> bool:
    return len(projects) > 1


def network_arg(projects: Sequence[str], network: str) -> str:
    """Network reference usable from every project.

    Service projects of a shared VPC need the fully qualified host network.
    """
    if is_shared_vpc(projects):
        return f"projects/{host_project(projects)}/global/networks/{network}"
    return network


def subnet_name(network: str, region: str, project_index: int) -> str:
    return f"{network}-{region}-{project_index}"


def subnet_args(
    autopilot: bool,
    projects: Sequence[str],
    region: str,
    network: str,
    project_index: int,
) -> list[str]:
    """Subnetwork flags for clusters of one project at one region.

    Args:
        autopilot: Whether Autopilot clusters are created.
        projects: All configured projects.
        region: Region hosting the attempt's subnets.
        network: VPC network name.
        project_index: Index of the project the cluster is created in.

    Returns:
        Flags for the create command; empty outside a shared VPC.
    """
    if not is_shared_vpc(projects):
        return []
    name = subnet_name(network, region, project_index)
    args = [f"--subnetwork=projects/{host_project(projects)}/regions/{region}/subnetworks/{name}"]
    if not autopilot:
        args.append("--enable-ip-alias")
    args.extend([
        f"--cluster-secondary-range-name={name}-pods",
        f"--services-secondary-range-name={name}-services",
    ])
    return args


def private_cluster_args(
    projects: Sequence[str],
    access_level: str,
    master_ipv4_cidr: str | None,
    cluster_name: str,
) -> list[str]:
    """Private cluster flags, empty for public clusters.

    Args:
        projects: All configured projects.
        access_level: ``no``, ``limited``, ``unrestricted`` or empty.
        master_ipv4_cidr: Master CIDR reserved for this cluster.
        cluster_name: Cluster the flags are built for.

    Returns:
        Flags for the create command.
    """
    if not access_level:
        return []
    args = [
        "--enable-ip-alias",
        "--enable-private-nodes",
        "--no-enable-basic-auth",
        f"--master-ipv4-cidr={master_ipv4_cidr}",
        "--no-issue-client-certificate",
        "--enable-master-authorized-networks",
    ]
    if not is_shared_vpc(projects):
        args.append(f"--create-subnetwork=name={cluster_name}-subnet")
    if access_level == PRIVATE_ACCESS_NO:
        args.append("--enable-private-endpoint")
    elif access_level == PRIVATE_ACCESS_LIMITED:
        args.append(f"--master-authorized-networks={SUBNET_PRIMARY_RANGE.format(index=0)}")
    elif access_level == PRIVATE_ACCESS_UNRESTRICTED:
        args.append("--master-authorized-networks=0.0.0.0/0")
    return args


def firewall_rule_name(project: str, cluster_name: str) -> str:
    """Firewall rule name, unique per (project, cluster) inside the host project."""
    digest = hashlib.sha1(project.encode()).hexdigest()[:8]
    return f"e2e-ports-{cluster_name}-{digest}"


# ============================================================================
# Project preparation
# ============================================================================

def prepare_project(project: str) -> None:
    """Enable the APIs needed to create clusters in *project*."""
    console.print(Panel.fit(f"Preparing project {project}", style="bold blue"))
    gcloud("services", "enable", *REQUIRED_SERVICES, f"--project={project}")
    console.print(f"[green]\u2705 Project '{project}' prepared[/green]")


# ============================================================================
# Networks
# ============================================================================

def create_network(projects: Sequence[str], network: str) -> None:
    """Create the shared VPC network in the host project if it is missing.

    The ``default`` network always exists and is left alone.
    """
    if network == DEFAULT_NETWORK:
        return
    project = host_project(projects)
    console.print(Panel.fit(f"Creating network '{network}'", style="bold blue"))
    try:
        gcloud("compute", "networks", "describe", network, f"--project={project}")
        console.print(f"[yellow]   Network '{network}' already exists[/yellow]")
        return
    except CommandError:
        pass
    mode = "custom" if is_shared_vpc(projects) else "auto"
    gcloud("compute", "networks", "create", network, f"--project={project}", f"--subnet-mode={mode}")
    console.print(f"[green]\u2705 Network '{network}' created[/green]")


def delete_network(projects: Sequence[str], network: str) -> None:
    """Delete the VPC network unless it is ``default``."""
    if network == DEFAULT_NETWORK:
        return
    console.print(f"[yellow]\u2139\ufe0f  Deleting network '{network}'...[/yellow]")
    gcloud("compute", "networks", "delete", network, "--quiet", f"--project={host_project(projects)}")
    console.print(f"[green]\u2705 Network '{network}' deleted[/green]")


def setup_network(projects: Sequence[str]) -> None:
    """Attach service projects to the host project's shared VPC."""
    if not is_shared_vpc(projects):
        return
    host = host_project(projects)
    console.print(Panel.fit("Configuring shared VPC", style="bold blue"))
    gcloud("compute", "shared-vpc", "enable", host)
    for project in projects[1:]:
        gcloud("compute", "shared-vpc", "associated-projects", "add", project, f"--host-project={host}")
        console.print(f"[green]  \u2713 {project} attached to {host}[/green]")


def create_subnets(
    projects: Sequence[str],
    network: str,
    location: Location,
    on_created: Callable[[str], None] | None = None,
) -> list[str]:
    """Create one subnet per project in the host project for an attempt.

    Args:
        projects: All configured projects.
        network: VPC network name.
        location: Location of the attempt; subnets live in its region.
        on_created: Called with each subnet name as soon as it exists.

    Returns:
        Names of the subnets created, in project order.
    """
    if not is_shared_vpc(projects):
        return []
    region = location.subnet_region
    host = host_project(projects)
    created: list[str] = []
    for index in range(len(projects)):
        name = subnet_name(network, region, index)
        gcloud(
            "compute", "networks", "subnets", "create", name,
            f"--project={host}",
            f"--network={network}",
            f"--region={region}",
            f"--range={SUBNET_PRIMARY_RANGE.format(index=index)}",
            f"--secondary-range={name}-pods={SUBNET_POD_RANGE.format(index=index + 1)},"
            f"{name}-services={SUBNET_SERVICES_RANGE.format(index=index)}",
        )
        created.append(name)
        if on_created is not None:
            on_created(name)
        console.print(f"[green]  \u2713 Subnet {name} created in {region}[/green]")
    return created


def delete_subnets(projects: Sequence[str], region: str, names: Sequence[str]) -> None:
    """Delete subnets from the host project."""
    for name in names:
        gcloud(
            "compute", "networks", "subnets", "delete", name, "--quiet",
            f"--project={host_project(projects)}", f"--region={region}",
        )
        logger.info("deleted subnet %s in %s", name, region)


# ============================================================================
# Firewall rules
# ============================================================================

def node_tag(project: str, cluster_name: str) -> str:
    """Network tag GKE assigns to the nodes of *cluster_name*."""
    tags = gcloud(
        "compute", "instances", "list",
        f"--project={project}",
        f"--filter=name~^gke-{cluster_name}-",
        "--limit=1",
        "--format=value(tags.items)",
    )
    tag = next((t for t in tags.replace(";", " ").split() if t.endswith("-node")), "")
    if not tag:
        raise RuntimeError(f"no node tag found for cluster {cluster_name!r} in project {project!r}")
    return tag


def ensure_firewall_rule(projects: Sequence[str], network: str, project: str, cluster_name: str) -> str:
    """Open test ports to the nodes of one cluster.

    Returns:
        Name of the firewall rule.
    """
    rule = firewall_rule_name(project, cluster_name)
    rule_project = host_project(projects) if is_shared_vpc(projects) else project
    tag = node_tag(project, cluster_name)
    try:
        gcloud("compute", "firewall-rules", "describe", rule, f"--project={rule_project}")
        console.print(f"[yellow]   Firewall rule '{rule}' already exists[/yellow]")
        return rule
    except CommandError:
        pass
    gcloud(
        "compute", "firewall-rules", "create", rule,
        f"--project={rule_project}",
        f"--network={network}",
        f"--allow={FIREWALL_ALLOW}",
        f"--source-ranges={FIREWALL_SOURCE_RANGES}",
        f"--target-tags={tag}",
    )
    console.print(f"[green]  \u2713 Firewall rule {rule} created[/green]")
    return rule


def delete_firewall_rule(projects: Sequence[str], project: str, cluster_name: str) -> None:
    """Delete the test firewall rule of one cluster, ignoring missing rules."""
    rule = firewall_rule_name(project, cluster_name)
    rule_project = host_project(projects) if is_shared_vpc(projects) else project
    try:
        gcloud("compute", "firewall-rules", "delete", rule, "--quiet", f"--project={rule_project}")
    except CommandError as err:
        logger.warning("firewall rule %s not deleted: %s", rule, err)
