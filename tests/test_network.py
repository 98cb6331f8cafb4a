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

import pytest

from gke_deployer import network
from gke_deployer.errors import CommandError
from gke_deployer.location import Location
from gke_deployer.network import (
    create_network,
    create_subnets,
    delete_firewall_rule,
    ensure_firewall_rule,
    firewall_rule_name,
    network_arg,
    private_cluster_args,
    subnet_args,
    subnet_name,
)


class FakeGcloud:
    """Records gcloud calls; raises CommandError for calls containing a failing verb."""

    def __init__(self, fail_on=(), responses=None):
        self.fail_on = set(fail_on)
        self.responses = responses or {}
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)
        for verb in self.fail_on:
            if verb in args:
                raise CommandError(["gcloud", *args], 1, "not found")
        for key, value in self.responses.items():
            if key in args:
                return value
        return ""


@pytest.fixture
def fake_gcloud(monkeypatch):
    def _install(**kwargs):
        fake = FakeGcloud(**kwargs)
        monkeypatch.setattr(network, "gcloud", fake)
        return fake
    return _install


class TestArgs:
    def test_network_arg_single_project(self):
        assert network_arg(["p"], "net") == "net"

    def test_network_arg_shared_vpc(self):
        assert network_arg(["host", "svc"], "net") == "projects/host/global/networks/net"

    def test_subnet_args_single_project(self):
        assert subnet_args(False, ["p"], "us-central1", "net", 0) == []

    def test_subnet_args_shared_vpc(self):
        args = subnet_args(False, ["host", "svc"], "us-central1", "net", 1)
        assert args == [
            "--subnetwork=projects/host/regions/us-central1/subnetworks/net-us-central1-1",
            "--enable-ip-alias",
            "--cluster-secondary-range-name=net-us-central1-1-pods",
            "--services-secondary-range-name=net-us-central1-1-services",
        ]

    def test_subnet_args_autopilot_skips_ip_alias(self):
        assert "--enable-ip-alias" not in subnet_args(True, ["host", "svc"], "r", "net", 0)

    def test_subnet_names_differ_per_region(self):
        assert subnet_name("net", "us-central1", 0) != subnet_name("net", "us-east1", 0)

    def test_public_cluster(self):
        assert private_cluster_args(["p"], "", None, "c1") == []

    @pytest.mark.parametrize("level,expected", [
        ("no", "--enable-private-endpoint"),
        ("limited", "--master-authorized-networks=10.0.0.0/24"),
        ("unrestricted", "--master-authorized-networks=0.0.0.0/0"),
    ])
    def test_private_cluster_levels(self, level, expected):
        args = private_cluster_args(["p"], level, "172.16.0.32/28", "c1")
        assert "--enable-private-nodes" in args
        assert "--master-ipv4-cidr=172.16.0.32/28" in args
        assert "--create-subnetwork=name=c1-subnet" in args
        assert expected in args

    def test_private_cluster_shared_vpc_uses_existing_subnet(self):
        args = private_cluster_args(["host", "svc"], "no", "172.16.0.32/28", "c1")
        assert not any(a.startswith("--create-subnetwork") for a in args)

    def test_firewall_rule_name(self):
        assert firewall_rule_name("p1", "c1") == firewall_rule_name("p1", "c1")
        assert firewall_rule_name("p1", "c1") != firewall_rule_name("p2", "c1")
        assert firewall_rule_name("p1", "c1").startswith("e2e-ports-c1-")


class TestNetworks:
    def test_default_network_untouched(self, fake_gcloud):
        fake = fake_gcloud()
        create_network(["p"], "default")
        assert fake.calls == []

    def test_existing_network_kept(self, fake_gcloud):
        fake = fake_gcloud()
        create_network(["p"], "net")
        assert [c[2] for c in fake.calls] == ["describe"]

    def test_missing_network_created(self, fake_gcloud):
        fake = fake_gcloud(fail_on=["describe"])
        create_network(["host", "svc"], "net")
        create = fake.calls[-1]
        assert create[:4] == ("compute", "networks", "create", "net")
        assert "--project=host" in create
        assert "--subnet-mode=custom" in create

    def test_subnets_single_project(self, fake_gcloud):
        fake = fake_gcloud()
        assert create_subnets(["p"], "net", Location(region="r")) == []
        assert fake.calls == []

    def test_subnets_reported_as_created(self, fake_gcloud):
        fake_gcloud()
        seen = []
        names = create_subnets(["host", "svc"], "net", Location(zone="us-east1-b"), on_created=seen.append)
        assert names == ["net-us-east1-0", "net-us-east1-1"]
        assert seen == names

    def test_subnet_failure_keeps_earlier_records(self, monkeypatch):
        calls = {"n": 0}

        def flaky(*args):
            calls["n"] += 1
            if calls["n"] == 2:
                raise CommandError(["gcloud", *args], 1, "quota")
            return ""

        monkeypatch.setattr(network, "gcloud", flaky)
        seen = []
        with pytest.raises(CommandError):
            create_subnets(["host", "svc"], "net", Location(region="r"), on_created=seen.append)
        assert seen == ["net-r-0"]


class TestFirewall:
    def test_rule_created_in_host_project(self, fake_gcloud):
        fake = fake_gcloud(fail_on=["describe"], responses={"list": "gke-c1-abc-node;foo"})
        rule = ensure_firewall_rule(["host", "svc"], "net", "svc", "c1")
        create = fake.calls[-1]
        assert create[:4] == ("compute", "firewall-rules", "create", rule)
        assert "--project=host" in create
        assert "--target-tags=gke-c1-abc-node" in create

    def test_missing_node_tag(self, fake_gcloud):
        fake_gcloud(responses={"list": ""})
        with pytest.raises(RuntimeError, match="no node tag"):
            ensure_firewall_rule(["p"], "net", "p", "c1")

    def test_delete_ignores_missing_rule(self, fake_gcloud, caplog):
        fake_gcloud(fail_on=["delete"])
        delete_firewall_rule(["p"], "p", "c1")
        assert "not deleted" in caplog.text
