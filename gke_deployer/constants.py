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


"""Constants, defaults loading, and default_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_defaults() -> dict:
    """Load known retryable errors and firewall defaults from defaults.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    defaults_file = Path(__file__).resolve().parent / "defaults.yaml"
    with open(defaults_file) as f:
        return yaml.safe_load(f) or {}


DEFAULTS = load_defaults()


def default_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEFAULTS dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEFAULTS
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


KNOWN_RETRYABLE_ERROR_PATTERNS: tuple[str, ...] = tuple(
    default_value("retryable_error_patterns", default=[])
)

# -- Tools --
GCLOUD = "gcloud"
KUBECTL = "kubectl"
KUBECONFIG_ENV = "KUBECONFIG"

# -- Cluster naming --
CLUSTER_NAME_PREFIX = "kt2-"
CLUSTER_NAME_MAX_ID_LENGTH = 33
VERSION_PATTERN = r"(\d)\.(\d)+(\.(\d)*(.*))?"
LATEST_VERSION = "latest"

# -- Private clusters --
PRIVATE_ACCESS_NO = "no"
PRIVATE_ACCESS_LIMITED = "limited"
PRIVATE_ACCESS_UNRESTRICTED = "unrestricted"
PRIVATE_ACCESS_LEVELS = (PRIVATE_ACCESS_NO, PRIVATE_ACCESS_LIMITED, PRIVATE_ACCESS_UNRESTRICTED)

# -- Networking --
DEFAULT_NETWORK = "default"
SUBNET_PRIMARY_RANGE = "10.0.{index}.0/24"
SUBNET_POD_RANGE = "10.{index}.0.0/16"
SUBNET_SERVICES_RANGE = "10.100.{index}.0/24"
FIREWALL_ALLOW = default_value("firewall", "allow", default="tcp,udp,icmp")
FIREWALL_SOURCE_RANGES = default_value("firewall", "source_ranges", default="0.0.0.0/0")
REQUIRED_SERVICES = ("compute.googleapis.com", "container.googleapis.com")

# -- Log dump --
REL_LOG_DUMP_SCRIPT = "cluster/log-dump/log-dump.sh"
CLUSTER_LOGS_DIR = "cluster-logs"

# -- Cluster defaults --
DEFAULT_MACHINE_TYPE = "e2-standard-4"
DEFAULT_NUM_NODES = 3
DEFAULT_IMAGE_TYPE = "cos_containerd"
DEFAULT_NUM_CLUSTERS = 1
DEFAULT_KUBECONFIG_DIR_PREFIX = "gke-deployer"

# -- Timing & limits --
CANCEL_POLL_INTERVAL_SECONDS = 1.0
RETRY_WAIT_SECONDS = 0
ROLLBACK_DELETE_MAX_RETRIES = 3
ROLLBACK_DELETE_WAIT_SECONDS = 5
KUBECTL_TIMEOUT_SECONDS = 60
