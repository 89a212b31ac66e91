"""
Shared test fixtures and configuration for entire test suite.

Provides: Simulated provider, local state backend, fast engine settings,
the reference VPC configuration and CLI environment isolation
Dependencies: pytest, infragraph
System role: Test infrastructure and fixture management
"""

import copy
import os
from typing import Any

import pytest

from infragraph.boundary.provider.schemas import NETWORK_SCHEMAS
from infragraph.boundary.provider.simulated import SimulatedNetworkProvider
from infragraph.boundary.state.local import LocalStateBackend
from infragraph.configs import get_settings
from infragraph.configs.engine import EngineSettings
from infragraph.core.apply_engine import ApplyEngine
from infragraph.core.graph_builder import GraphBuilder
from infragraph.core.planner import Planner
from infragraph.core.variables import VariableStore
from infragraph.models.configuration import Configuration


VPC_DOCUMENT: dict[str, Any] = {
    "variables": [
        {"name": "vpc_cidr", "type": "string", "default": "10.0.0.0/16"},
        {"name": "public_subnet_cidrs", "type": "list", "default": ["10.0.1.0/24", "10.0.2.0/24"]},
        {"name": "availability_zones", "type": "list", "default": ["ap-southeast-2a", "ap-southeast-2b"]},
    ],
    "resources": [
        {
            "type": "vpc",
            "name": "main",
            "attributes": {"cidr_block": {"var": "vpc_cidr"}},
        },
        {
            "type": "subnet",
            "name": "public",
            "count": {"length": {"var": "public_subnet_cidrs"}},
            "attributes": {
                "vpc_id": {"ref": "vpc.main"},
                "cidr_block": {"var": "public_subnet_cidrs", "index": "count.index"},
                "availability_zone": {"var": "availability_zones", "index": "count.index"},
                "map_public_ip_on_launch": True,
            },
        },
        {
            "type": "internet_gateway",
            "name": "main",
            "attributes": {"vpc_id": {"ref": "vpc.main"}},
        },
        {
            "type": "route_table",
            "name": "public",
            "attributes": {"vpc_id": {"ref": "vpc.main"}},
        },
        {
            "type": "route",
            "name": "internet",
            "attributes": {
                "route_table_id": {"ref": "route_table.public"},
                "destination_cidr_block": "0.0.0.0/0",
                "gateway_id": {"ref": "internet_gateway.main"},
            },
        },
        {
            "type": "route_table_association",
            "name": "public",
            "count": 2,
            "attributes": {
                "subnet_id": {"ref": "subnet.public", "index": "count.index"},
                "route_table_id": {"ref": "route_table.public"},
            },
        },
    ],
    "outputs": [
        {"name": "vpc_id", "value": {"ref": "vpc.main"}},
        {"name": "public_subnet_ids", "value": {"ref": "subnet.public", "index": "*"}},
    ],
}


@pytest.fixture
def vpc_document() -> dict[str, Any]:
    """
    Reference VPC configuration document.

    Returns:
        dict: Fresh copy that tests may modify
    """
    return copy.deepcopy(VPC_DOCUMENT)


@pytest.fixture
def vpc_configuration(vpc_document) -> Configuration:
    return Configuration.model_validate(vpc_document)


@pytest.fixture
def build_graph():
    """
    Build a graph from a configuration with optional overrides.

    Returns:
        Callable[[Configuration, dict | None], ResourceGraph]
    """
    def _build(configuration: Configuration, overrides: dict | None = None):
        variables = VariableStore(configuration.variables, overrides)
        taggable = [name for name, schema in NETWORK_SCHEMAS.items() if schema.taggable]
        builder = GraphBuilder(variables, configuration.default_tags, taggable)
        return builder.build(configuration.resources)

    return _build


@pytest.fixture
def engine_settings() -> EngineSettings:
    """Engine settings with retries that never sleep."""
    return EngineSettings(
        max_workers=4,
        max_attempts=3,
        backoff_initial=0,
        backoff_max=0,
        backoff_jitter=0,
    )


@pytest.fixture
def provider() -> SimulatedNetworkProvider:
    """In-memory simulated network provider."""
    return SimulatedNetworkProvider()


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "infragraph.state.json"


@pytest.fixture
def backend(state_path) -> LocalStateBackend:
    """Local state backend in a temp directory."""
    return LocalStateBackend(state_path, lock_ttl_seconds=60)


@pytest.fixture
def lease(backend):
    """
    Hold the backend lease for the duration of a test.

    Yields:
        StateLease: Acquired lease, released on teardown
    """
    acquired = backend.acquire_lock("pytest@localhost:1")
    yield acquired
    backend.release_lock(acquired)


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """
    Isolate CLI runs: state, simulated cloud and .env lookups under tmp_path.

    Yields:
        Path: Working directory used by the CLI
    """
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("INFRAGRAPH_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("INFRAGRAPH_STATE_BACKEND", "local")
    monkeypatch.setenv("INFRAGRAPH_STATE_PATH", str(tmp_path / "state.json"))
    monkeypatch.setenv("INFRAGRAPH_PROVIDER_KIND", "simulated")
    monkeypatch.setenv("INFRAGRAPH_PROVIDER_SIMULATED_PATH", str(tmp_path / "cloud.json"))
    monkeypatch.setenv("INFRAGRAPH_ENGINE_BACKOFF_INITIAL", "0")
    monkeypatch.setenv("INFRAGRAPH_ENGINE_BACKOFF_MAX", "0")
    monkeypatch.setenv("INFRAGRAPH_ENGINE_BACKOFF_JITTER", "0")
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture
def run_apply(provider, backend, lease, engine_settings):
    """
    Plan and apply a graph against the simulated provider.

    Returns:
        Callable returning (plan, result, snapshot); the snapshot is read from
        the backend unless one is passed in
    """
    def _run(graph, snapshot=None, engine=None):
        snapshot = backend.read() if snapshot is None else snapshot
        plan = Planner(provider.schemas).plan(graph, snapshot)
        engine = engine or ApplyEngine(provider, backend, engine_settings)
        result = engine.apply(graph, plan, snapshot, lease)
        return plan, result, snapshot

    return _run
