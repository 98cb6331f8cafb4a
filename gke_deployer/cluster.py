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


"""Single-cluster create, delete, credential and readiness operations."""

from __future__ import annotations

import json
import shlex
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from gke_deployer import console
from gke_deployer.config import ClusterSpec, DeployerConfig
from gke_deployer.constants import GCLOUD, LATEST_VERSION
from gke_deployer.errors import VerificationError
from gke_deployer.location import Location
from gke_deployer.network import network_arg
from gke_deployer.utils import gcloud, run_cancellable, run_kubectl


@dataclass(frozen=True)
class CreateOptions:
    """Settings shared by every create command of a run.

    Attributes:
        command_group: gcloud command group such as ``beta``, or empty.
        extra_flags: Extra flags appended after ``--quiet``.
        create_command: Full create command override, or empty.
        autopilot: Whether Autopilot clusters are created.
        network: Network reference valid in every project.
    """

    command_group: str = ""
    extra_flags: str = ""
    create_command: str = ""
    autopilot: bool = False
    network: str = "default"

    @classmethod
    def from_config(cls, cfg: DeployerConfig) -> CreateOptions:
        return cls(
            command_group=cfg.gcloud_command_group,
            extra_flags=cfg.gcloud_extra_flags,
            create_command=cfg.create_command,
            autopilot=cfg.autopilot,
            network=network_arg(cfg.projects, cfg.network),
        )


def create_command(options: CreateOptions) -> list[str]:
    """gcloud arguments up to and including the extra flags."""
    if options.create_command:
        return shlex.split(options.create_command)
    args: list[str] = []
    if options.command_group:
        args.append(options.command_group)
    args.extend(["container", "clusters", "create-auto" if options.autopilot else "create"])
    args.append("--quiet")
    args.extend(shlex.split(options.extra_flags))
    return args


def resolve_latest_version(location: Location, channel: str) -> str:
    """Newest default version GKE offers in *channel* at *location*.

    Raises:
        RuntimeError: If the server config lists no such channel.
    """
    raw = gcloud("container", "get-server-config", location.flag, "--format=json")
    for entry in json.loads(raw).get("channels", []):
        if entry.get("channel", "").lower() == channel.lower():
            versions = entry.get("validVersions") or [entry.get("defaultVersion")]
            if versions and versions[0]:
                return versions[0]
    raise RuntimeError(f"no versions found for release channel {channel!r} at {location.name}")


def build_create_args(
    project: str,
    cluster: ClusterSpec,
    extra_args: Sequence[str],
    location: Location,
    options: CreateOptions,
) -> list[str]:
    """Full gcloud argument list that creates *cluster* in *project*."""
    args = create_command(options)
    args.extend([f"--project={project}", location.flag, f"--network={options.network}"])
    # Autopilot manages nodes itself and rejects node shape flags.
    if not options.autopilot:
        args.extend([
            f"--machine-type={cluster.machine_type}",
            f"--num-nodes={cluster.num_nodes}",
            f"--image-type={cluster.image_type}",
        ])
    if cluster.workload_identity:
        args.append(f"--workload-pool={project}.svc.id.goog")
    if cluster.release_channel:
        args.append(f"--release-channel={cluster.release_channel}")
        version = cluster.version
        if version == LATEST_VERSION:
            version = resolve_latest_version(location, cluster.release_channel)
            console.print(f"[yellow]   Using latest version {version} in {cluster.release_channel} channel[/yellow]")
        args.append(f"--cluster-version={version}")
    elif cluster.version:
        args.append(f"--cluster-version={cluster.version}")
    args.extend(extra_args)
    args.append(cluster.name)
    return args


def create_cluster(
    project: str,
    cluster: ClusterSpec,
    extra_args: Sequence[str],
    location: Location,
    cancel: threading.Event | None = None,
    *,
    options: CreateOptions,
) -> None:
    """Create one cluster, stopping early when *cancel* is set.

    Failures are not classified or retried here.

    Raises:
        CommandError: If gcloud fails or the call is cancelled.
    """
    args = build_create_args(project, cluster, extra_args, location, options)
    console.print(f"[yellow]\u2139\ufe0f  Creating cluster '{cluster.name}' in {project} ({location.name})...[/yellow]")
    run_cancellable([GCLOUD, *args], cancel)
    console.print(f"[green]\u2705 Cluster '{cluster.name}' created in {project}[/green]")


def delete_cluster(project: str, name: str, location: Location) -> None:
    """Delete one cluster.

    Raises:
        CommandError: If gcloud fails.
    """
    console.print(f"[yellow]\u2139\ufe0f  Deleting cluster '{name}' in {project} ({location.name})...[/yellow]")
    gcloud("container", "clusters", "delete", name, "--quiet", f"--project={project}", location.flag)
    console.print(f"[green]\u2705 Cluster '{name}' deleted[/green]")


def get_credentials(project: str, name: str, location: Location) -> None:
    """Write credentials for one cluster to the file ``$KUBECONFIG`` points at."""
    gcloud("container", "clusters", "get-credentials", name, f"--project={project}", location.flag)


def get_instance_groups(project: str, name: str, location: Location) -> list[str]:
    """Instance group URLs backing the node pools of one cluster."""
    raw = gcloud(
        "container", "clusters", "describe", name,
        f"--project={project}", location.flag,
        "--format=value(instanceGroupUrls)",
    )
    return [url for url in raw.replace(";", " ").split() if url]


def list_nodes(env: Mapping[str, str] | None = None) -> list[str]:
    """Node names reported by the cluster the kubeconfig in *env* points at.

    Raises:
        VerificationError: If kubectl fails; carries the captured output.
    """
    ok, output = run_kubectl(["get", "nodes", "-o=name"], env=env)
    lines = [line for line in output.splitlines() if line.strip()]
    if not ok:
        raise VerificationError("kubectl get nodes failed", "\n".join(lines))
    return lines
