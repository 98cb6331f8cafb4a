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


from __future__ import annotations

import os
import threading
import time
from pathlib import Path

import pytest

from gke_deployer import orchestrator
from gke_deployer.errors import CommandError, FatalCreationError, VerificationError
from gke_deployer.location import Location
from gke_deployer.orchestrator import Deployer
from gke_deployer.retry import AttemptRecord


class FakeGke:
    """Stands in for every gcloud-backed call the deployer makes."""

    def __init__(self):
        self.events = []
        self.create_failures = {}
        self.delete_failures = set()
        self.nodes = ["node/n1"]
        self.dump_error = None
        self.delete_delay = 0.0
        self.live_subnets = set()
        self.lock = threading.Lock()

    def log(self, *event):
        with self.lock:
            self.events.append(event)

    def names(self, kind):
        return [e[1:] for e in self.events if e[0] == kind]

    def install(self, monkeypatch):
        monkeypatch.setattr(orchestrator, "require_command", lambda cmd: self.log("require", cmd))
        monkeypatch.setattr(orchestrator, "prepare_project", lambda p: self.log("prepare", p))
        monkeypatch.setattr(orchestrator, "create_network", lambda projects, net: self.log("network", net))
        monkeypatch.setattr(orchestrator, "setup_network", lambda projects: self.log("setup-network"))
        monkeypatch.setattr(orchestrator, "create_cluster", self.create_cluster)
        monkeypatch.setattr(orchestrator, "create_subnets", self.create_subnets)
        monkeypatch.setattr(orchestrator, "delete_subnets", self.delete_subnets)
        monkeypatch.setattr(orchestrator, "delete_cluster", self.delete_cluster)
        monkeypatch.setattr(orchestrator, "materialize_kubeconfigs", self.materialize)
        monkeypatch.setattr(orchestrator, "get_instance_groups", lambda p, n, loc: [f"ig-{n}"])
        monkeypatch.setattr(orchestrator, "ensure_firewall_rule", lambda projects, net, p, n: self.log("firewall", p, n))
        monkeypatch.setattr(orchestrator, "delete_firewall_rule", lambda projects, p, n: self.log("delete-firewall", p, n))
        monkeypatch.setattr(orchestrator, "delete_network", lambda projects, net: self.log("delete-network", net))
        monkeypatch.setattr(orchestrator, "dump_cluster_logs", self.dump)
        monkeypatch.setattr(orchestrator, "list_nodes", lambda env=None: list(self.nodes))
        monkeypatch.setattr(orchestrator, "ROLLBACK_DELETE_WAIT_SECONDS", 0)
        return self

    def create_cluster(self, project, cluster, extra_args, location, cancel, *, options):
        self.log("create", project, cluster.name, location.name, tuple(extra_args))
        err = self.create_failures.get((location.name, cluster.name))
        if err is not None:
            raise err

    def create_subnets(self, projects, network, location, on_created=None):
        names = []
        if len(projects) > 1:
            for index in range(len(projects)):
                name = f"{network}-{location.subnet_region}-{index}"
                with self.lock:
                    if name in self.live_subnets:
                        raise CommandError(["gcloud", "compute", "networks", "subnets", "create"], 1,
                                           f"The resource '{name}' already exists")
                    self.live_subnets.add(name)
                names.append(name)
                on_created(name)
        self.log("subnets", location.name, tuple(names))
        return names

    def delete_subnets(self, projects, region, names):
        with self.lock:
            self.live_subnets.difference_update(names)
        self.log("delete-subnets", region, tuple(names))

    def delete_cluster(self, project, name, location):
        time.sleep(self.delete_delay)
        self.log("delete", project, name, location.name)
        if (project, name) in self.delete_failures:
            raise CommandError(["gcloud", "container", "clusters", "delete"], 1, "boom")

    def materialize(self, topology, location):
        self.log("kubeconfig", location.name)
        return {
            (project, c.name): Path(f"/tmp/kubecfg-{project}-{c.name}")
            for project, clusters in topology.items()
            for c in clusters
        }

    def dump(self, repo_root, artifacts, kubeconfig=""):
        self.log("dump", kubeconfig)
        if self.dump_error is not None:
            raise self.dump_error


@pytest.fixture
def gke(monkeypatch):
    return FakeGke().install(monkeypatch)


def stockout():
    return CommandError(["gcloud"], 1, "ZONE_RESOURCE_POOL_EXHAUSTED")


class TestUp:
    def test_happy_path(self, gke, make_config):
        cfg = make_config(num_clusters=2, run_id="r", repo_root="/k8s")
        deployer = Deployer(cfg)

        location = deployer.up()

        assert location == Location(region="us-central1")
        assert deployer.location == location
        assert deployer.test_prepared is True
        assert sorted(gke.names("create")) == [
            ("proj-a", "kt2-r-1", "us-central1", ()),
            ("proj-a", "kt2-r-2", "us-central1", ()),
        ]
        assert gke.names("require") == [("gcloud",), ("kubectl",)]
        assert gke.names("prepare") == [("proj-a",)]
        assert gke.names("firewall") == [("proj-a", "kt2-r-1"), ("proj-a", "kt2-r-2")]
        assert deployer.instance_groups[("proj-a", "kt2-r-1")] == ["ig-kt2-r-1"]
        expected = os.pathsep.join(["/tmp/kubecfg-proj-a-kt2-r-1", "/tmp/kubecfg-proj-a-kt2-r-2"])
        assert deployer.kubeconfig_path == expected
        assert os.environ["KUBECONFIG"] == expected
        assert gke.events[-1] == ("dump", expected)

    def test_missing_tool_stops_before_cloud_calls(self, gke, make_config, monkeypatch):
        def missing(cmd):
            raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.")

        monkeypatch.setattr(orchestrator, "require_command", missing)
        with pytest.raises(RuntimeError, match="gcloud"):
            Deployer(make_config(repo_root="/k8s")).up()
        assert gke.events == []

    def test_retry_uses_next_location_for_test_setup(self, gke, make_config):
        gke.create_failures[("us-central1", "kt2-1")] = stockout()
        cfg = make_config(regions=["us-central1", "us-east1"], retryable_error_patterns=["RESOURCE_POOL"])
        deployer = Deployer(cfg)

        assert deployer.up() == Location(region="us-east1")
        assert gke.names("kubeconfig") == [("us-east1",)]

    def test_shared_vpc_subnets_follow_attempt(self, gke, make_config):
        gke.create_failures[("us-central1", "a")] = stockout()
        cfg = make_config(
            projects=["host", "svc"], cluster_names=["a", "b:1"],
            regions=["us-central1", "us-east1"], retry_known_errors=True,
        )
        deployer = Deployer(cfg)
        coordinator = deployer.new_coordinator()
        assert coordinator.run() == Location(region="us-east1")
        coordinator.wait_for_rollbacks(timeout=5)

        assert gke.names("subnets") == [
            ("us-central1", ("default-us-central1-0", "default-us-central1-1")),
            ("us-east1", ("default-us-east1-0", "default-us-east1-1")),
        ]
        assert ("delete-subnets", "us-central1", ("default-us-central1-0", "default-us-central1-1")) in gke.events
        svc_create = [e for e in gke.names("create") if e[0] == "svc"][-1]
        assert any("default-us-east1-1" in arg for arg in svc_create[3])

    def test_shared_vpc_retry_in_same_region_reuses_subnets(self, gke, make_config):
        gke.create_failures[("us-central1-a", "b")] = stockout()
        gke.delete_delay = 0.3
        cfg = make_config(
            projects=["host", "svc"], cluster_names=["a", "b:1"], network="e2e", regions=[],
            zones=["us-central1-a", "us-central1-b"], retry_known_errors=True,
        )

        assert Deployer(cfg).up() == Location(zone="us-central1-b")
        assert gke.names("delete") == [("host", "a", "us-central1-a")]
        assert gke.names("subnets")[-1] == ("us-central1-b", ("e2e-us-central1-0", "e2e-us-central1-1"))
        assert gke.live_subnets == {"e2e-us-central1-0", "e2e-us-central1-1"}

    def test_fatal_error_skips_test_setup_but_dumps_logs(self, gke, make_config):
        gke.create_failures[("us-central1", "kt2-1")] = CommandError(["gcloud"], 1, "PERMISSION_DENIED")
        deployer = Deployer(make_config(repo_root="/k8s"))

        with pytest.raises(FatalCreationError):
            deployer.up()

        assert deployer.test_prepared is False
        assert gke.names("kubeconfig") == []
        assert gke.names("dump") == [("",)]

    def test_dump_failure_does_not_mask_result(self, gke, make_config, caplog):
        gke.dump_error = RuntimeError("log dump script not found")
        deployer = Deployer(make_config(repo_root="/k8s"))

        assert deployer.up() == Location(region="us-central1")
        assert "Dumping cluster logs" in caplog.text

    def test_no_repo_root_skips_dump(self, gke, make_config, caplog):
        Deployer(make_config()).up()
        assert gke.names("dump") == []
        assert "skip dumping cluster logs" in caplog.text

    def test_setup_error_is_wrapped(self, gke, make_config, monkeypatch):
        def no_groups(project, name, location):
            raise CommandError(["gcloud"], 1, "describe failed")

        monkeypatch.setattr(orchestrator, "get_instance_groups", no_groups)
        with pytest.raises(RuntimeError, match="error running setup for the tests"):
            Deployer(make_config()).up()


class TestTestSetup:
    def test_runs_once(self, gke, make_config):
        deployer = Deployer(make_config())
        location = Location(region="us-central1")
        deployer.test_setup(location)
        deployer.test_setup(location)
        assert gke.names("kubeconfig") == [("us-central1",)]
        assert len(gke.names("firewall")) == 1

    def test_kubeconfig_cached(self, gke, make_config):
        deployer = Deployer(make_config())
        first = deployer.kubeconfig()
        assert deployer.kubeconfig() == first
        assert len(gke.names("kubeconfig")) == 1


class TestRollback:
    def test_deletes_recorded_resources(self, gke, make_config):
        deployer = Deployer(make_config(projects=["host", "svc"], cluster_names=["a", "b:1"]))
        record = AttemptRecord(index=0, location=Location(region="us-central1"))
        record.record_cluster("host", "a")
        record.record_subnet("default-us-central1-0")

        deployer._rollback_attempt(record)

        assert gke.names("delete") == [("host", "a", "us-central1")]
        assert gke.names("delete-subnets") == [("us-central1", ("default-us-central1-0",))]

    def test_failed_delete_is_retried_then_logged(self, gke, make_config, caplog):
        gke.delete_failures.add(("proj-a", "a"))
        deployer = Deployer(make_config(cluster_names=["a", "b"]))
        record = AttemptRecord(index=0, location=Location(region="r1"))
        record.record_cluster("proj-a", "a")
        record.record_cluster("proj-a", "b")

        deployer._rollback_attempt(record)

        deletes = gke.names("delete")
        assert deletes.count(("proj-a", "a", "r1")) == 3
        assert ("proj-a", "b", "r1") in deletes
        assert "not deleted" in caplog.text


class TestIsUp:
    def test_nodes_present(self, gke, make_config):
        assert Deployer(make_config(num_clusters=2)).is_up() is True

    def test_no_nodes(self, gke, make_config):
        gke.nodes = []
        with pytest.raises(RuntimeError, match="project had no nodes active"):
            Deployer(make_config()).is_up()

    def test_kubectl_failure(self, gke, make_config, monkeypatch):
        def failing(env=None):
            raise VerificationError("kubectl get nodes failed", "Unable to connect")

        monkeypatch.setattr(orchestrator, "list_nodes", failing)
        with pytest.raises(VerificationError):
            Deployer(make_config()).is_up()


class TestDown:
    def test_deletes_everything(self, gke, make_config):
        cfg = make_config(projects=["host", "svc"], cluster_names=["a", "b:1"], network="e2e", zones=["us-east1-c"])
        Deployer(cfg).down()

        assert sorted(gke.names("delete")) == [("host", "a", "us-east1-c"), ("svc", "b", "us-east1-c")]
        assert gke.names("delete-firewall") == [("host", "a"), ("svc", "b")]
        assert gke.names("delete-subnets") == [("us-east1", ("e2e-us-east1-0", "e2e-us-east1-1"))]
        assert gke.events[-1] == ("delete-network", "e2e")

    def test_explicit_location(self, gke, make_config):
        cfg = make_config(regions=["r1", "r2"])
        Deployer(cfg).down(Location(region="r2"))
        assert gke.names("delete") == [("proj-a", "kt2-1", "r2")]

    def test_delete_failure(self, gke, make_config):
        gke.delete_failures.add(("proj-a", "kt2-1"))
        with pytest.raises(RuntimeError, match="error deleting clusters"):
            Deployer(make_config()).down()
        assert gke.names("delete-network") == []
