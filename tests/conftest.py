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

import pytest

from gke_deployer.config import ClusterSpec, DeployerConfig, resolve_config
from gke_deployer.constants import KUBECONFIG_ENV


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep GKE_* settings and KUBECONFIG from leaking in or out of tests."""
    for key in list(os.environ):
        if key.startswith("GKE_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv(KUBECONFIG_ENV, "")
    monkeypatch.delenv(KUBECONFIG_ENV)


@pytest.fixture
def make_config():
    def _make(**kwargs) -> DeployerConfig:
        kwargs.setdefault("projects", ["proj-a"])
        kwargs.setdefault("regions", ["us-central1"])
        return resolve_config(DeployerConfig(**kwargs))
    return _make


@pytest.fixture
def make_topology():
    """Build a topology from (project, cluster names) pairs."""
    def _make(*entries: tuple[str, list[str]]) -> dict[str, tuple[ClusterSpec, ...]]:
        topology = {}
        index = 0
        for project, names in entries:
            specs = []
            for name in names:
                specs.append(ClusterSpec(name=name, index=index))
                index += 1
            topology[project] = tuple(specs)
        return topology
    return _make
