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


"""The Up/Down/IsUp flows that compose domain modules into a deployment."""

from __future__ import annotations

import os
import threading
from pathlib import Path

from rich.panel import Panel
from tenacity import Retrying, stop_after_attempt, wait_fixed

from gke_deployer import console, logger
from gke_deployer.classifier import compile_patterns
from gke_deployer.cluster import (
    CreateOptions,
    create_cluster,
    delete_cluster,
    get_instance_groups,
    list_nodes,
)
from gke_deployer.config import ClusterSpec, DeployerConfig, build_topology
from gke_deployer.constants import (
    GCLOUD,
    KUBECONFIG_ENV,
    KUBECTL,
    ROLLBACK_DELETE_MAX_RETRIES,
    ROLLBACK_DELETE_WAIT_SECONDS,
)
from gke_deployer.errors import CommandError
from gke_deployer.kubeconfig import join_kubeconfigs, materialize_kubeconfigs
from gke_deployer.location import Location, select_location
from gke_deployer.logs import dump_cluster_logs
from gke_deployer.network import (
    create_network,
    create_subnets,
    delete_firewall_rule,
    delete_network,
    delete_subnets,
    ensure_firewall_rule,
    is_shared_vpc,
    prepare_project,
    private_cluster_args,
    setup_network,
    subnet_args,
    subnet_name,
)
from gke_deployer.parallel import FanOutExecutor
from gke_deployer.retry import AttemptRecord, RetryCoordinator
from gke_deployer.utils import require_command


def check_prerequisites() -> None:
    """Verify gcloud and kubectl are installed.

    Raises:
        RuntimeError: If a required tool is missing.
    """
    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    for cmd in (GCLOUD, KUBECTL):
        require_command(cmd)
    console.print("[green]\u2705 All required tools are available[/green]")


def _delete_cluster_with_retry(project: str, name: str, location: Location) -> None:
    retrying = Retrying(
        stop=stop_after_attempt(ROLLBACK_DELETE_MAX_RETRIES),
        wait=wait_fixed(ROLLBACK_DELETE_WAIT_SECONDS),
        reraise=True,
    )
    for attempt in retrying:
        with attempt:
            delete_cluster(project, name, location)


class Deployer:
    """Creates, checks and tears down the clusters of one configuration.

    Args:
        cfg: Configuration already validated by ``resolve_config``.
    """

    def __init__(self, cfg: DeployerConfig) -> None:
        self.cfg = cfg
        self.topology = build_topology(cfg)
        self.patterns = compile_patterns(cfg.effective_retryable_patterns())
        self.options = CreateOptions.from_config(cfg)
        self.executor = FanOutExecutor(cfg.max_in_flight)

        self.location: Location | None = None
        self.kubeconfig_files: dict[tuple[str, str], Path] = {}
        self.kubeconfig_path = ""
        self.instance_groups: dict[tuple[str, str], list[str]] = {}
        self.test_prepared = False
        self._prepared_projects: set[str] = set()

    # ------------------------------------------------------------------
    # Up
    # ------------------------------------------------------------------

    def up(self) -> Location:
        """Create every cluster, then prepare them for tests.

        Cluster logs are dumped at the end whatever the outcome, when a
        ``repo_root`` is configured.

        Returns:
            The location the clusters were created at.

        Raises:
            FatalCreationError: If creation failed with a non-retryable error.
            RetriesExhaustedError: If every candidate location failed.
            RuntimeError: If network preparation or test setup fails.
        """
        check_prerequisites()
        try:
            # Only the first project hosts shared resources.
            self._prepare_project_once(self.cfg.projects[0])
            create_network(self.cfg.projects, self.cfg.network)
            setup_network(self.cfg.projects)

            logger.debug("environment: %s", dict(os.environ))
            self.location = self.new_coordinator().run()

            try:
                self.test_setup(self.location)
            except Exception as err:
                raise RuntimeError(f"error running setup for the tests: {err}") from err
            return self.location
        finally:
            self._dump_logs()

    def new_coordinator(self) -> RetryCoordinator:
        """Coordinator wired to gcloud for this configuration."""
        return RetryCoordinator(
            topology=self.topology,
            regions=self.cfg.regions,
            zones=self.cfg.zones,
            patterns=self.patterns,
            create=self._create_cluster,
            prepare_attempt=self._prepare_attempt,
            rollback=self._rollback_attempt,
            executor=self.executor,
            retry_wait_seconds=self.cfg.retry_wait_seconds,
        )

    def _prepare_project_once(self, project: str) -> None:
        if project in self._prepared_projects:
            return
        prepare_project(project)
        self._prepared_projects.add(project)

    def _create_cluster(
        self, project: str, cluster: ClusterSpec, location: Location, cancel: threading.Event,
    ) -> None:
        projects = self.cfg.projects
        extra_args = subnet_args(
            self.cfg.autopilot, projects, location.subnet_region, self.cfg.network, projects.index(project),
        )
        extra_args += private_cluster_args(
            projects, cluster.private_access_level, cluster.master_ipv4_cidr, cluster.name,
        )
        create_cluster(project, cluster, extra_args, location, cancel, options=self.options)

    def _prepare_attempt(self, record: AttemptRecord) -> None:
        create_subnets(self.cfg.projects, self.cfg.network, record.location, on_created=record.record_subnet)

    def _rollback_attempt(self, record: AttemptRecord) -> None:
        """Best-effort deletion of what a failed attempt created."""
        for project, name in record.clusters:
            try:
                _delete_cluster_with_retry(project, name, record.location)
            except CommandError as err:
                logger.warning("rollback: cluster %s/%s not deleted: %s", project, name, err)
        subnets = record.subnets
        if subnets:
            try:
                delete_subnets(self.cfg.projects, record.location.subnet_region, subnets)
            except CommandError as err:
                logger.warning("rollback: subnets %s not deleted: %s", ", ".join(subnets), err)

    def _dump_logs(self) -> None:
        if not self.cfg.repo_root:
            logger.warning("repo-root not supplied, skip dumping cluster logs")
            return
        try:
            dump_cluster_logs(self.cfg.repo_root, self.cfg.artifacts, self.kubeconfig_path)
        except Exception as err:
            logger.warning("Dumping cluster logs at the end of Up() failed: %s", err)

    # ------------------------------------------------------------------
    # Test setup
    # ------------------------------------------------------------------

    def test_setup(self, location: Location) -> None:
        """Kubeconfig, instance groups and firewall rules; runs once per Deployer."""
        if self.test_prepared:
            return
        self._prepare_project_once(self.cfg.projects[0])
        self.kubeconfig(location)
        self._discover_instance_groups(location)
        self._ensure_firewall_rules()
        self.test_prepared = True

    def kubeconfig(self, location: Location | None = None) -> str:
        """``KUBECONFIG`` value listing one file per cluster, created on first use.

        Also exports it as ``KUBECONFIG`` for the test phase.
        """
        if self.kubeconfig_path:
            return self.kubeconfig_path
        self.kubeconfig_files = materialize_kubeconfigs(self.topology, self.active_location(location))
        self.kubeconfig_path = join_kubeconfigs(self.kubeconfig_files.values())
        os.environ[KUBECONFIG_ENV] = self.kubeconfig_path
        return self.kubeconfig_path

    def _discover_instance_groups(self, location: Location) -> None:
        console.print(Panel.fit("Discovering instance groups", style="bold blue"))
        for project, clusters in self.topology.items():
            for cluster in clusters:
                groups = get_instance_groups(project, cluster.name, location)
                self.instance_groups[(project, cluster.name)] = groups
                console.print(f"[green]  \u2713 {project}/{cluster.name}: {len(groups)} instance group(s)[/green]")

    def _ensure_firewall_rules(self) -> None:
        console.print(Panel.fit("Ensuring firewall rules", style="bold blue"))
        for project, clusters in self.topology.items():
            for cluster in clusters:
                ensure_firewall_rule(self.cfg.projects, self.cfg.network, project, cluster.name)

    # ------------------------------------------------------------------
    # IsUp / Down
    # ------------------------------------------------------------------

    def active_location(self, location: Location | None = None) -> Location:
        """Explicit location, else the one Up created at, else the first candidate."""
        if location is not None:
            return location
        if self.location is not None:
            return self.location
        return select_location(self.cfg.regions, self.cfg.zones, 0)

    def is_up(self, location: Location | None = None) -> bool:
        """Check that every cluster reports at least one node.

        Raises:
            VerificationError: If kubectl cannot reach a cluster.
            RuntimeError: If a cluster has no nodes.
        """
        self._prepare_project_once(self.cfg.projects[0])
        self.kubeconfig(location)
        for (project, name), path in self.kubeconfig_files.items():
            nodes = list_nodes(env={**os.environ, KUBECONFIG_ENV: str(path)})
            if not nodes:
                raise RuntimeError(f"project had no nodes active: {project} (cluster {name})")
            logger.info("%s/%s has %d node(s)", project, name, len(nodes))
        return True

    def down(self, location: Location | None = None) -> None:
        """Delete every cluster, then the networking created for them.

        Raises:
            RuntimeError: If any cluster deletion fails.
        """
        location = self.active_location(location)
        projects = self.cfg.projects
        operations = {
            f"{project}/{cluster.name}": (
                lambda _cancel, project=project, name=cluster.name: delete_cluster(project, name, location)
            )
            for project, clusters in self.topology.items()
            for cluster in clusters
        }
        err = self.executor.run(operations)
        if err is not None:
            raise RuntimeError(f"error deleting clusters: {err}") from err

        for project, clusters in self.topology.items():
            for cluster in clusters:
                delete_firewall_rule(projects, project, cluster.name)
        if is_shared_vpc(projects):
            region = location.subnet_region
            names = [subnet_name(self.cfg.network, region, index) for index in range(len(projects))]
            delete_subnets(projects, region, names)
        delete_network(projects, self.cfg.network)
        console.print("[green]\u2705 All clusters deleted[/green]")
