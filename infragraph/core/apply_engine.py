"""
Apply engine.

Executes a Plan against the provider in up to three phases:

1. Destroy phase: orphans and nodes being replaced are deleted, dependents
   before their dependencies. A failed deletion blocks deletion of what it
   depends on and the re-creation of a replaced node.
2. Create/update phase: nodes are created or updated in dependency order,
   each one only after every node it references is realized.
3. Cleanup: removed resources that a kept node still referenced are deleted
   once that node has been updated away from them.

Independent branches run concurrently on a thread pool. Worker threads only
make provider calls; the coordinating thread owns every node state change and
every snapshot write, and persists the snapshot after each operation.

Creates are made safe to retry: a ``creating`` entry with an idempotency
token is persisted before the call, and any retry (or a later run finding the
marker) asks the provider to look the token up before creating again.

Dependencies: tenacity, concurrent.futures (stdlib)
System role: Drives provider calls and owns the state snapshot during a run
"""

import heapq
import logging
import threading
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from infragraph.boundary.provider.base import ProviderClient
from infragraph.boundary.state.base import StateBackend, StateLease
from infragraph.configs.engine import EngineSettings
from infragraph.core.exceptions import (
    ProviderCallError,
    ResourceNotFoundError,
    TransientProviderError,
)
from infragraph.core.values import diff_keys, substitute_references
from infragraph.models.graph import ResourceGraph
from infragraph.models.plan import Action, ApplyResult, NodeOutcome, Plan
from infragraph.models.resource import NodeState, Reference, ResourceNode
from infragraph.models.state import ResourceState, StateSnapshot
from infragraph.observability.log_utils import log_exception_with_context, log_with_context

logger = logging.getLogger(__name__)

Task = Callable[[], Any]


@dataclass
class _Run:
    """Mutable bookkeeping for one apply call, touched only by the coordinator."""

    graph: ResourceGraph
    plan: Plan
    snapshot: StateSnapshot
    lease: StateLease
    result: ApplyResult
    desired: dict[str, dict[str, Any]] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)


@dataclass
class _PhaseOutcome:
    succeeded: set[str] = field(default_factory=set)
    failed: set[str] = field(default_factory=set)
    skipped: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)


class ApplyEngine:
    """
    Executes plans with bounded concurrency, retries and cancellation.

    Usage:
        engine = ApplyEngine(provider, backend, EngineSettings())
        result = engine.apply(graph, plan, snapshot, lease)
    """

    def __init__(
        self,
        provider: ProviderClient,
        backend: StateBackend,
        settings: EngineSettings | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            provider: Cloud network provider
            backend: State backend the snapshot is persisted to
            settings: Worker pool and retry settings
            cancel_event: Set to stop submitting new operations
        """
        self._provider = provider
        self._backend = backend
        self._settings = settings or EngineSettings()
        self._cancel = cancel_event or threading.Event()
        self._calls = 0
        self._calls_lock = threading.Lock()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    def apply(
        self,
        graph: ResourceGraph,
        plan: Plan,
        snapshot: StateSnapshot,
        lease: StateLease,
    ) -> ApplyResult:
        """
        Execute a plan.

        Node failures do not raise; they are reported in the result and the
        dependents of a failed node are skipped. The snapshot is updated in
        place and persisted after every completed operation.

        Args:
            graph: Graph the plan was computed from (empty for a teardown)
            plan: Planned changes
            snapshot: State snapshot, mutated in place
            lease: Held state lease, renewed on every write

        Returns:
            ApplyResult: Per-node outcomes, failures, skipped and pending ids

        Raises:
            StateBackendError: If the snapshot cannot be persisted
            LockContentionError: If the lease was lost during the run
        """
        with self._calls_lock:
            self._calls = 0
        run = _Run(graph=graph, plan=plan, snapshot=snapshot, lease=lease, result=ApplyResult())

        deferred = self._deferred_deletes(run)
        destroyed = self._destroy_phase(
            run, [node_id for node_id in plan.destroy_order if node_id not in deferred]
        )
        blocked = destroyed.failed | set(destroyed.skipped)
        pending = list(destroyed.pending)
        unfinished: set[str] = set()
        if not self._cancel.is_set():
            created = self._create_phase(run, blocked)
            pending.extend(
                node_id for node_id in created.pending
                if plan.changes[node_id].action != Action.NOOP
            )
            unfinished = created.failed | set(created.skipped) | set(created.pending)
        else:
            pending.extend(
                node_id for node_id in plan.create_order
                if plan.changes[node_id].action != Action.NOOP and node_id not in blocked
            )

        if deferred:
            if self._cancel.is_set():
                pending.extend(node_id for node_id in plan.destroy_order if node_id in deferred)
            else:
                cleanup = self._destroy_phase(
                    run,
                    [node_id for node_id in plan.destroy_order if node_id in deferred],
                    held=self._held_deletes(run, deferred, unfinished),
                )
                pending.extend(cleanup.pending)

        result = run.result
        result.pending = pending
        result.cancelled = self._cancel.is_set()
        with self._calls_lock:
            result.provider_calls = self._calls
        log_with_context(
            logger, logging.INFO, f"{__name__}:apply - Run finished",
            failed=len(result.failures),
            skipped=len(result.skipped),
            pending=len(result.pending),
            provider_calls=result.provider_calls,
            cancelled=result.cancelled,
        )
        return result

    def _deferred_deletes(self, run: _Run) -> dict[str, set[str]]:
        """
        Removed resources still recorded as a dependency of a node updated in place.

        Their deletion waits until after the create/update phase, when the
        update has moved the dependent away. The orphans they depend on wait
        with them.

        Returns:
            dict[str, set[str]]: Deferred node id to the updated nodes it waits on
        """
        orphans = {
            node_id for node_id in run.plan.destroy_order
            if run.plan.changes[node_id].action == Action.DELETE and node_id in run.snapshot.resources
        }
        deferred: dict[str, set[str]] = {}
        for node_id, change in run.plan.changes.items():
            entry = run.snapshot.get(node_id)
            if change.action != Action.UPDATE or entry is None:
                continue
            for dependency in entry.dependencies:
                if dependency in orphans:
                    deferred.setdefault(dependency, set()).add(node_id)

        stack = list(deferred)
        while stack:
            for dependency in run.snapshot.resources[stack.pop()].dependencies:
                if dependency in orphans and dependency not in deferred:
                    deferred[dependency] = set()
                    stack.append(dependency)
        if deferred:
            logger.info(
                f"{__name__}:apply - Deleting {len(deferred)} resource(s) after in-place updates: "
                f"{', '.join(sorted(deferred))}"
            )
        return deferred

    def _held_deletes(
        self,
        run: _Run,
        deferred: Mapping[str, set[str]],
        unfinished: set[str],
    ) -> list[str]:
        held = []
        for node_id, updaters in deferred.items():
            waiting_on = sorted(updaters & unfinished)
            if waiting_on:
                self._record_skip(run, node_id, waiting_on[0])
                held.append(node_id)
        return held

    def _destroy_phase(self, run: _Run, candidates: list[str], held: Iterable[str] = ()) -> _PhaseOutcome:
        order = [node_id for node_id in candidates if node_id in run.snapshot.resources]
        members = set(order)
        # A resource is deleted only after everything recorded as depending on it
        prerequisites: dict[str, set[str]] = {node_id: set() for node_id in order}
        for node_id in order:
            for dependency in run.snapshot.resources[node_id].dependencies:
                if dependency in members:
                    prerequisites[dependency].add(node_id)

        if order:
            logger.info(f"{__name__}:apply - Destroy phase: {len(order)} resource(s)")
        return self._schedule(
            run,
            order,
            prerequisites,
            prepare=lambda node_id: self._prepare_delete(run, node_id),
            complete=lambda node_id, value, error: self._complete_delete(run, node_id, error),
            blocked=held,
        )

    def _create_phase(self, run: _Run, blocked: set[str]) -> _PhaseOutcome:
        order = list(run.plan.create_order)
        dependencies = run.graph.dependency_map()
        prerequisites = {node_id: set(dependencies.get(node_id, ())) for node_id in order}
        return self._schedule(
            run,
            order,
            prerequisites,
            prepare=lambda node_id: self._prepare_apply(run, node_id),
            complete=lambda node_id, value, error: self._complete_apply(run, node_id, value, error),
            blocked=blocked,
        )

    def _schedule(
        self,
        run: _Run,
        order: list[str],
        prerequisites: Mapping[str, Iterable[str]],
        prepare: Callable[[str], Task | None],
        complete: Callable[[str, Any, BaseException | None], bool],
        blocked: Iterable[str] = (),
    ) -> _PhaseOutcome:
        """
        Run node operations with bounded concurrency in prerequisite order.

        ``prepare`` runs on the coordinating thread and returns the provider
        task to submit, or None when the node needs no call. ``complete`` runs
        on the coordinating thread with the task's value or exception and
        returns True on success. When a node fails, everything that
        transitively waits on it is skipped.
        """
        outcome = _PhaseOutcome()
        position = {node_id: i for i, node_id in enumerate(order)}
        waiting = {
            node_id: {dep for dep in prerequisites.get(node_id, ()) if dep in position}
            for node_id in order
        }
        successors: dict[str, list[str]] = {node_id: [] for node_id in order}
        for node_id, deps in waiting.items():
            for dep in deps:
                successors[dep].append(node_id)

        ready: list[tuple[int, str]] = []
        done: set[str] = set()

        def settle(node_id: str, ok: bool, cause: str | None = None) -> None:
            done.add(node_id)
            if ok:
                outcome.succeeded.add(node_id)
                for successor in successors[node_id]:
                    remaining = waiting[successor]
                    remaining.discard(node_id)
                    if not remaining and successor not in done:
                        heapq.heappush(ready, (position[successor], successor))
                return
            outcome.failed.add(node_id)
            stack = list(successors[node_id])
            while stack:
                skipped_id = stack.pop()
                if skipped_id in done:
                    continue
                done.add(skipped_id)
                outcome.skipped.append(skipped_id)
                self._record_skip(run, skipped_id, cause or node_id)
                stack.extend(successors[skipped_id])

        for node_id in blocked:
            if node_id in position and node_id not in done:
                settle(node_id, False, node_id)

        for node_id in order:
            if not waiting[node_id] and node_id not in done:
                heapq.heappush(ready, (position[node_id], node_id))

        in_flight: dict[Future, str] = {}
        max_workers = self._settings.max_workers
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="infragraph-apply") as executor:
            while ready or in_flight:
                while ready and len(in_flight) < max_workers and not self._cancel.is_set():
                    _, node_id = heapq.heappop(ready)
                    if node_id in done:
                        continue
                    try:
                        task = prepare(node_id)
                    except ProviderCallError as e:
                        settle(node_id, complete(node_id, None, e))
                        continue
                    if task is None:
                        settle(node_id, True)
                    else:
                        in_flight[executor.submit(task)] = node_id

                if not in_flight:
                    if self._cancel.is_set():
                        break
                    continue

                finished, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in finished:
                    node_id = in_flight.pop(future)
                    error = future.exception()
                    value = None if error is not None else future.result()
                    settle(node_id, complete(node_id, value, error))

        outcome.pending = [node_id for node_id in order if node_id not in done]
        if outcome.pending:
            logger.warning(
                f"{__name__}:apply - Cancelled with {len(outcome.pending)} operation(s) not started"
            )
        return outcome

    def _record_skip(self, run: _Run, node_id: str, cause: str) -> None:
        change = run.plan.changes.get(node_id)
        if node_id in run.result.skipped:
            return
        run.result.skipped.append(node_id)
        node = run.graph.nodes.get(node_id)
        run.result.outcomes[node_id] = NodeOutcome(
            node_id=node_id,
            action=change.action if change else Action.NOOP,
            state=node.state if node is not None else NodeState.PLANNED,
            error=f"skipped: depends on {cause}",
        )
        logger.info(f"{__name__}:apply - Skipping {node_id}: depends on {cause}")

    # destroy phase

    def _prepare_delete(self, run: _Run, node_id: str) -> Task | None:
        entry = run.snapshot.resources[node_id]
        node = run.graph.nodes.get(node_id)
        if node is not None:
            node.state = NodeState.DESTROYING

        if entry.provider_id is None and entry.token is None:
            # Never reached the provider
            self._forget(run, node_id)
            return None

        resource_type = entry.type
        provider_id = entry.provider_id
        token = entry.token
        config = dict(entry.config)

        def task() -> str:
            return self._retrying("delete", node_id)(
                self._delete, resource_type, provider_id, token, config
            )

        log_with_context(logger, logging.INFO, f"{__name__}:delete - Deleting {node_id}", provider_id=provider_id)
        return task

    def _delete(
        self,
        resource_type: str,
        provider_id: str | None,
        token: str | None,
        config: dict[str, Any],
    ) -> str:
        target = provider_id
        if target is None:
            found = self._invoke(lambda: self._provider.lookup(resource_type, config, token))
            if found is None:
                return "absent"
            target = found["id"]
        try:
            self._invoke(lambda: self._provider.delete(resource_type, target))
        except ResourceNotFoundError:
            return "absent"
        return "deleted"

    def _complete_delete(self, run: _Run, node_id: str, error: BaseException | None) -> bool:
        change = run.plan.changes[node_id]
        node = run.graph.nodes.get(node_id)
        if error is None:
            self._forget(run, node_id)
            if change.action == Action.DELETE:
                if node is not None:
                    node.state = NodeState.DESTROYED
                run.result.outcomes[node_id] = NodeOutcome(node_id, Action.DELETE, NodeState.DESTROYED)
            logger.info(f"{__name__}:delete - Deleted {node_id}")
            return True

        entry = run.snapshot.resources[node_id]
        entry.status = NodeState.FAILED
        run.snapshot.put(entry)
        self._persist(run)
        if node is not None:
            node.state = NodeState.FAILED
        self._record_failure(run, node_id, change.action, error)
        return False

    def _forget(self, run: _Run, node_id: str) -> None:
        run.snapshot.remove(node_id)
        self._persist(run)

    # create/update phase

    def _prepare_apply(self, run: _Run, node_id: str) -> Task | None:
        node = run.graph.nodes[node_id]
        change = run.plan.changes[node_id]
        entry = run.snapshot.get(node_id)

        if change.action == Action.NOOP:
            return self._settle_noop(run, node, entry)

        desired = substitute_references(node.attributes, lambda ref: self._realized(run, node_id, ref))
        run.desired[node_id] = desired

        if change.action == Action.UPDATE and entry is not None and entry.is_realized:
            changed = diff_keys(desired, entry.config)
            if not changed:
                return self._settle_noop(run, node, entry)
            changes = {name: desired.get(name) for name in changed}
            provider_id = entry.provider_id
            node.state = NodeState.CREATING
            log_with_context(
                logger, logging.INFO, f"{__name__}:update - Updating {node_id}",
                changed=changed,
            )
            return lambda: self._retrying("update", node_id)(
                self._invoke, lambda: self._provider.update(node.type, provider_id, changes)
            )

        prior_token = None
        if entry is not None and not entry.is_realized and entry.token:
            prior_token = entry.token
        token = prior_token or str(uuid.uuid4())
        run.tokens[node_id] = token
        run.snapshot.put(
            ResourceState(
                id=node_id,
                type=node.type,
                status=NodeState.CREATING,
                config=desired,
                dependencies=node.dependencies(),
                token=token,
            )
        )
        self._persist(run)
        node.state = NodeState.CREATING
        log_with_context(
            logger, logging.INFO, f"{__name__}:create - Creating {node_id}",
            action=change.action.value, recovering=prior_token is not None,
        )
        return lambda: self._create(node_id, node.type, desired, token, prior_token is not None)

    def _settle_noop(self, run: _Run, node: ResourceNode, entry: ResourceState | None) -> Task | None:
        node.state = NodeState.CREATED
        if entry is not None and entry.status != NodeState.CREATED:
            entry.status = NodeState.CREATED
            run.snapshot.put(entry)
            self._persist(run)
        run.result.outcomes[node.id] = NodeOutcome(node.id, Action.NOOP, NodeState.CREATED)
        return None

    def _create(
        self,
        node_id: str,
        resource_type: str,
        attributes: dict[str, Any],
        token: str,
        check_first: bool,
    ) -> dict[str, Any]:
        attempts = 0

        def attempt() -> dict[str, Any]:
            nonlocal attempts
            attempts += 1
            if check_first or attempts > 1:
                # An earlier attempt may have succeeded without us seeing the response
                found = self._invoke(lambda: self._provider.lookup(resource_type, attributes, token))
                if found is not None:
                    logger.info(f"{__name__}:create - Adopting existing {node_id} ({found.get('id')})")
                    return found
            return self._invoke(lambda: self._provider.create(resource_type, attributes, token))

        return self._retrying("create", node_id)(attempt)

    def _complete_apply(
        self,
        run: _Run,
        node_id: str,
        value: Any,
        error: BaseException | None,
    ) -> bool:
        node = run.graph.nodes[node_id]
        change = run.plan.changes[node_id]
        entry = run.snapshot.get(node_id)

        if error is None and not (isinstance(value, dict) and value.get("id")):
            error = ProviderCallError(
                f"Provider returned no id for {node_id}", node.type, change.action.value
            )

        if error is not None:
            if entry is not None:
                entry.status = NodeState.FAILED
                run.snapshot.put(entry)
                self._persist(run)
            node.state = NodeState.FAILED
            self._record_failure(run, node_id, change.action, error)
            return False

        run.snapshot.put(
            ResourceState(
                id=node_id,
                type=node.type,
                status=NodeState.CREATED,
                provider_id=str(value["id"]),
                attributes=dict(value),
                config=run.desired.get(node_id, {}),
                dependencies=node.dependencies(),
                token=run.tokens.get(node_id, entry.token if entry is not None else None),
            )
        )
        self._persist(run)
        node.state = NodeState.CREATED
        run.result.outcomes[node_id] = NodeOutcome(node_id, change.action, NodeState.CREATED)
        log_with_context(
            logger, logging.INFO, f"{__name__}:apply - {change.action.value} complete for {node_id}",
            provider_id=value["id"],
        )
        return True

    def _realized(self, run: _Run, node_id: str, ref: Reference) -> Any:
        found, value = run.snapshot.realized_value(ref.target, ref.attribute)
        if not found:
            raise ProviderCallError(
                f"{node_id} references {ref}, which has no realized value",
                run.graph.nodes[node_id].type,
            )
        return value

    # shared

    def _record_failure(self, run: _Run, node_id: str, action: Action, error: BaseException) -> None:
        run.result.failures[node_id] = str(error)
        node = run.graph.nodes.get(node_id)
        run.result.outcomes[node_id] = NodeOutcome(
            node_id=node_id,
            action=action,
            state=node.state if node is not None else NodeState.FAILED,
            error=str(error),
        )
        log_exception_with_context(
            logger, f"{__name__}:apply - {action.value} failed for {node_id}", error,
            node_id=node_id,
        )

    def _persist(self, run: _Run) -> None:
        run.snapshot.serial += 1
        run.lease = self._backend.renew_lock(run.lease)
        self._backend.write(run.snapshot, run.lease)

    def _invoke(self, call: Callable[[], Any]) -> Any:
        """Count and run one provider call, normalizing unexpected errors."""
        with self._calls_lock:
            self._calls += 1
        try:
            return call()
        except ProviderCallError:
            raise
        except Exception as e:
            raise ProviderCallError(f"{type(e).__name__}: {e}") from e

    def _retrying(self, operation: str, node_id: str) -> Retrying:
        settings = self._settings
        return Retrying(
            retry=retry_if_exception_type(TransientProviderError),
            stop=stop_after_attempt(settings.max_attempts),
            wait=wait_exponential_jitter(
                multiplier=settings.backoff_initial,
                max=settings.backoff_max,
                jitter=settings.backoff_jitter,
            ),
            before_sleep=lambda retry_state: logger.warning(
                f"{__name__}:{operation} - Retry {retry_state.attempt_number}/"
                f"{settings.max_attempts} for {node_id}: {retry_state.outcome.exception()}"
            ),
            reraise=True,
        )
