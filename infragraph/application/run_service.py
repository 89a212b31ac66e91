"""
Run service.

Orchestrates one CLI command: resolve variables, build and validate the
graph, then plan, apply or destroy under the state lease, and finally
resolve outputs. All validation happens before the lease is taken, so a bad
configuration never locks or touches state.

Dependencies: infragraph.core, infragraph.boundary
System role: Application layer between the CLI and the resolve pipeline
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Mapping

from infragraph.boundary.provider.base import ProviderClient
from infragraph.boundary.state.base import StateBackend
from infragraph.configs.engine import EngineSettings
from infragraph.core.apply_engine import ApplyEngine
from infragraph.core.dependency_resolver import DependencyResolver
from infragraph.core.exceptions import (
    ApplyCancelledError,
    InvalidReferenceError,
    PartialApplyError,
    ValidationError,
)
from infragraph.core.graph_builder import GraphBuilder
from infragraph.core.output_resolver import OutputResolver
from infragraph.core.planner import Planner
from infragraph.core.validation import validate_graph
from infragraph.core.variables import VariableStore
from infragraph.models.configuration import Configuration
from infragraph.models.graph import ResourceGraph
from infragraph.models.output import OutputValue
from infragraph.models.plan import ApplyResult, Plan
from infragraph.models.state import StateSnapshot
from infragraph.utils.naming import format_address, lock_owner, parse_address

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """What an apply or destroy run did."""

    plan: Plan
    result: ApplyResult
    outputs: dict[str, OutputValue] = field(default_factory=dict)

    def raise_for_status(self) -> None:
        """
        Raise if the run did not finish cleanly.

        Raises:
            ApplyCancelledError: If the run was cancelled
            PartialApplyError: If any node failed
        """
        if self.result.cancelled:
            raise ApplyCancelledError(
                completed=len(self.result.outcomes),
                pending=self.result.pending,
            )
        if self.result.failures:
            raise PartialApplyError(self.result.failures, self.result.skipped)


class RunService:
    """
    Entry point for plan, apply, destroy and state inspection.

    Usage:
        service = RunService(configuration, provider, backend, overrides=overrides)
        report = service.apply()
    """

    def __init__(
        self,
        configuration: Configuration,
        provider: ProviderClient,
        backend: StateBackend,
        engine_settings: EngineSettings | None = None,
        overrides: Mapping[str, Any] | None = None,
        cancel_event: threading.Event | None = None,
        owner: str | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            configuration: Parsed declarative configuration
            provider: Network provider
            backend: State backend
            engine_settings: Worker pool and retry settings
            overrides: Variable overrides (var-file, environment, --var)
            cancel_event: Set by the CLI on SIGINT
            owner: Lease owner; defaults to user@host:pid
        """
        self._configuration = configuration
        self._provider = provider
        self._backend = backend
        self._overrides = dict(overrides or {})
        self._owner = owner or lock_owner()
        self._resolver = DependencyResolver()
        self._planner = Planner(provider.schemas, self._resolver)
        self._engine = ApplyEngine(provider, backend, engine_settings, cancel_event)
        self._outputs = OutputResolver()

    def validate(self) -> ResourceGraph:
        """
        Resolve variables, build the graph and check it.

        Returns:
            ResourceGraph: Validated graph

        Raises:
            ValidationError: Any configuration error (undefined variable,
                type mismatch, bad count, bad reference, cycle, unknown type,
                missing attribute)
        """
        variables = VariableStore(self._configuration.variables, self._overrides)
        variables.resolve_all()

        taggable = [name for name, schema in self._provider.schemas.items() if schema.taggable]
        builder = GraphBuilder(variables, self._configuration.default_tags, taggable)
        graph = builder.build(self._configuration.resources)

        validate_graph(graph, self._provider.schemas)
        self._resolver.creation_order(graph)
        self._validate_outputs(graph)
        logger.info(f"{__name__}:validate - Configuration valid ({len(graph)} resources)")
        return graph

    def plan(self) -> Plan:
        """Preview changes without calling the provider or taking the lease."""
        graph = self.validate()
        snapshot = self._backend.read()
        return self._planner.plan(graph, snapshot)

    def apply(self) -> RunReport:
        """
        Apply the configuration.

        Returns:
            RunReport: Plan, per-node results and resolved outputs

        Raises:
            ValidationError: Before the lease is taken
            LockContentionError: If another run holds the lease
            PartialApplyError: After persisting, if any node failed
            ApplyCancelledError: After persisting, if the run was cancelled
        """
        graph = self.validate()
        with self._backend.locked(self._owner) as lease:
            snapshot = self._backend.read()
            plan = self._planner.plan(graph, snapshot)
            result = self._engine.apply(graph, plan, snapshot, lease)
            outputs = self._outputs.resolve(self._configuration.outputs, graph, snapshot)
            self._outputs.record(outputs, snapshot)
            snapshot.serial += 1
            self._backend.write(snapshot, lease)

        report = RunReport(plan=plan, result=result, outputs=outputs)
        report.raise_for_status()
        return report

    def plan_destroy(self) -> Plan:
        """Preview a full teardown."""
        snapshot = self._backend.read()
        return self._planner.plan_destroy(snapshot, self._graph_or_none())

    def destroy(self) -> RunReport:
        """
        Delete every resource recorded in the state snapshot.

        Works from the snapshot alone, so a configuration that no longer
        builds can still be torn down.

        Returns:
            RunReport: Plan and per-node results

        Raises:
            LockContentionError: If another run holds the lease
            PartialApplyError: After persisting, if any deletion failed
            ApplyCancelledError: After persisting, if the run was cancelled
        """
        graph = self._graph_or_none()
        with self._backend.locked(self._owner) as lease:
            snapshot = self._backend.read()
            plan = self._planner.plan_destroy(snapshot, graph)
            result = self._engine.apply(graph or ResourceGraph(), plan, snapshot, lease)
            if not snapshot.resources:
                snapshot.outputs = {}
            elif graph is not None:
                outputs = self._outputs.resolve(self._configuration.outputs, graph, snapshot)
                self._outputs.record(outputs, snapshot)
            else:
                self._outputs.invalidate(snapshot)
            snapshot.serial += 1
            self._backend.write(snapshot, lease)

        report = RunReport(plan=plan, result=result)
        report.raise_for_status()
        return report

    def outputs(self) -> dict[str, OutputValue]:
        """Outputs recorded by the last apply."""
        return OutputResolver.from_snapshot(self._backend.read())

    def show(self) -> StateSnapshot:
        return self._backend.read()

    def state_list(self) -> list[str]:
        return list(self._backend.read().resources)

    def _graph_or_none(self) -> ResourceGraph | None:
        try:
            return self.validate()
        except ValidationError as e:
            logger.warning(f"{__name__}:destroy - Ordering from state only: {e}")
            return None

    def _validate_outputs(self, graph: ResourceGraph) -> None:
        for output in self._configuration.outputs:
            source = f"output.{output.name}"
            try:
                target_type, target_name, _ = parse_address(output.value.ref)
            except ValueError as e:
                raise InvalidReferenceError(source, output.value.ref, str(e)) from e
            address = format_address(target_type, target_name)
            if not graph.instances_of(address) and address not in {
                declaration.address for declaration in self._configuration.resources
            }:
                raise InvalidReferenceError(source, output.value.ref, "no such resource")
