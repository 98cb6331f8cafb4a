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


"""
cli.py - Unified CLI for multi-project GKE test clusters.

Subcommands:
    create     Create infrastructure resources (clusters)
    delete     Delete infrastructure resources (clusters)
    check      Inspect existing clusters (up, kubeconfig, names)

Environment Variables:
    Every create option can also be set via GKE_* environment variables,
    e.g. GKE_PROJECTS='["p1"]', GKE_REGIONS='["us-central1","us-east1"]',
    GKE_RETRYABLE_ERROR_PATTERNS='[".*ZONE_RESOURCE_POOL_EXHAUSTED.*"]'.

Examples:
    # Two clusters, falling back to us-east1 on a stockout
    gke-deployer create clusters -p my-project --num-clusters 2 --run-id 1234 \\
        --region us-central1 --region us-east1 --retry-known-errors

    # Check the clusters and fetch credentials
    gke-deployer check up -p my-project --num-clusters 2 --run-id 1234 --region us-central1

    # Delete them
    gke-deployer delete clusters -p my-project --num-clusters 2 --run-id 1234 --region us-central1
"""

from __future__ import annotations

import sys

import typer

from gke_deployer import configure_logging, console
from gke_deployer.commands import check_cmd, create_cmd, delete_cmd

app = typer.Typer(
    help="Unified CLI for multi-project GKE test clusters.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Initialize logging for all subcommands."""
    configure_logging(verbose)


app.add_typer(create_cmd.app, name="create")
app.add_typer(delete_cmd.app, name="delete")
app.add_typer(check_cmd.app, name="check")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
