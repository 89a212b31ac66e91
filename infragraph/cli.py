"""
Command line interface.

    infragraph plan     [--config FILE] [--var NAME=VALUE ...] [--var-file FILE] [--destroy]
    infragraph apply    [--config FILE] [--var NAME=VALUE ...] [--var-file FILE]
    infragraph destroy  [--config FILE] [--var NAME=VALUE ...] [--var-file FILE]
    infragraph output   [NAME] [--json]
    infragraph show     [--json]
    infragraph state list
    infragraph validate [--config FILE] [--var NAME=VALUE ...] [--var-file FILE]

Plans, results and outputs go to stdout; logs go to stderr. Exit code is 1
on any validation error or failed resource and 130 when a run is cancelled.

Dependencies: argparse (stdlib), python-dotenv
System role: Outer surface of the resolver
"""

import argparse
import json
import logging
import signal
import sys
import threading
from typing import Any, Callable

from dotenv import load_dotenv
from pydantic import ValidationError as SchemaValidationError

from infragraph import __version__
from infragraph.application import RunService, build_backend, build_provider
from infragraph.configs import Settings, get_settings
from infragraph.core.exceptions import ApplyCancelledError, InfraGraphError
from infragraph.core.values import render_value
from infragraph.core.variables import collect_overrides
from infragraph.models.configuration import Configuration
from infragraph.models.output import OutputValue
from infragraph.models.plan import Action, ApplyResult, Plan
from infragraph.models.state import StateSnapshot
from infragraph.observability import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130

_SYMBOLS = {
    Action.CREATE: "+",
    Action.UPDATE: "~",
    Action.REPLACE: "-/+",
    Action.DELETE: "-",
}


def build_parser() -> argparse.ArgumentParser:
    config_args = argparse.ArgumentParser(add_help=False)
    config_args.add_argument(
        "--config", "-c",
        default="infragraph.json",
        help="Configuration JSON document (default: infragraph.json)",
    )
    config_args.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Override a variable; may be repeated. Non-string values are parsed as JSON.",
    )
    config_args.add_argument(
        "--var-file",
        default=None,
        help="JSON object of variable overrides",
    )

    parser = argparse.ArgumentParser(
        prog="infragraph",
        description="Declarative resolver for cloud network infrastructure.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Override INFRAGRAPH_LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    plan = commands.add_parser("plan", parents=[config_args], help="Preview changes")
    plan.add_argument("--destroy", action="store_true", help="Preview a full teardown")
    commands.add_parser("apply", parents=[config_args], help="Create or update resources")
    commands.add_parser("destroy", parents=[config_args], help="Delete every recorded resource")
    commands.add_parser("validate", parents=[config_args], help="Check the configuration")

    output = commands.add_parser("output", parents=[config_args], help="Print recorded outputs")
    output.add_argument("name", nargs="?", help="Single output to print")
    output.add_argument("--json", action="store_true", help="Print JSON, including sensitive values")

    show = commands.add_parser("show", parents=[config_args], help="Print the state snapshot")
    show.add_argument("--json", action="store_true", help="Print the raw snapshot JSON")

    state = commands.add_parser("state", help="Inspect the state snapshot")
    state_commands = state.add_subparsers(dest="state_command", required=True)
    state_commands.add_parser("list", parents=[config_args], help="List recorded resource addresses")
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Run the CLI.

    Args:
        argv: Arguments without the program name (defaults to sys.argv[1:])

    Returns:
        int: Process exit code
    """
    load_dotenv()
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)

    handlers: dict[str, Callable[[argparse.Namespace, Settings], int]] = {
        "plan": _cmd_plan,
        "apply": _cmd_apply,
        "destroy": _cmd_destroy,
        "validate": _cmd_validate,
        "output": _cmd_output,
        "show": _cmd_show,
        "state": _cmd_state,
    }
    try:
        return handlers[args.command](args, settings)
    except ApplyCancelledError as e:
        print(f"Cancelled: {e}", file=sys.stderr)
        return EXIT_CANCELLED
    except KeyboardInterrupt:
        print("Interrupted; in-flight results may not be recorded", file=sys.stderr)
        return EXIT_CANCELLED
    except InfraGraphError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED
    except SchemaValidationError as e:
        print(f"Error: invalid configuration document:\n{e}", file=sys.stderr)
        return EXIT_FAILED
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED


def _service(
    args: argparse.Namespace,
    settings: Settings,
    cancel_event: threading.Event | None = None,
) -> RunService:
    configuration = Configuration.from_file(args.config)
    overrides = collect_overrides(
        var_file=args.var_file,
        assignments=args.var,
        declared=[variable.name for variable in configuration.variables],
    )
    return RunService(
        configuration,
        provider=build_provider(settings.provider),
        backend=build_backend(settings.state),
        engine_settings=settings.engine,
        overrides=overrides,
        cancel_event=cancel_event,
    )


def _state_service(args: argparse.Namespace, settings: Settings) -> RunService:
    # Inspection commands work without a configuration file
    return RunService(
        Configuration(),
        provider=build_provider(settings.provider),
        backend=build_backend(settings.state),
    )


def _install_cancel_handler(cancel_event: threading.Event) -> Callable[[], None]:
    """
    First SIGINT requests cancellation; a second one interrupts immediately.

    Returns:
        Callable that restores the previous handler
    """
    previous = signal.getsignal(signal.SIGINT)

    def handle(signum: int, frame: Any) -> None:
        if cancel_event.is_set():
            signal.signal(signal.SIGINT, signal.default_int_handler)
            raise KeyboardInterrupt
        cancel_event.set()
        print(
            "\nCancelling: waiting for in-flight operations to finish "
            "(press Ctrl-C again to abort)",
            file=sys.stderr,
        )

    signal.signal(signal.SIGINT, handle)
    return lambda: signal.signal(signal.SIGINT, previous)


def _cmd_plan(args: argparse.Namespace, settings: Settings) -> int:
    service = _service(args, settings)
    plan = service.plan_destroy() if args.destroy else service.plan()
    print(render_plan(plan))
    return EXIT_OK


def _cmd_apply(args: argparse.Namespace, settings: Settings) -> int:
    cancel_event = threading.Event()
    service = _service(args, settings, cancel_event)
    restore = _install_cancel_handler(cancel_event)
    try:
        report = service.apply()
    finally:
        restore()
    print(render_plan(report.plan))
    print(render_result(report.result, destroy=False))
    if report.outputs:
        print("\nOutputs:\n")
        print(render_outputs(report.outputs))
    return EXIT_OK


def _cmd_destroy(args: argparse.Namespace, settings: Settings) -> int:
    cancel_event = threading.Event()
    service = _service(args, settings, cancel_event)
    restore = _install_cancel_handler(cancel_event)
    try:
        report = service.destroy()
    finally:
        restore()
    print(render_plan(report.plan))
    print(render_result(report.result, destroy=True))
    return EXIT_OK


def _cmd_validate(args: argparse.Namespace, settings: Settings) -> int:
    graph = _service(args, settings).validate()
    print(f"Configuration is valid: {len(graph)} resource(s).")
    return EXIT_OK


def _cmd_output(args: argparse.Namespace, settings: Settings) -> int:
    outputs = _state_service(args, settings).outputs()
    if args.name:
        if args.name not in outputs:
            print(f"Error: output '{args.name}' not found", file=sys.stderr)
            return EXIT_FAILED
        value = outputs[args.name]
        if not value.resolved:
            print(f"Error: output '{args.name}' is unresolved", file=sys.stderr)
            return EXIT_FAILED
        if args.json or not isinstance(value.value, str):
            print(json.dumps(value.value, indent=2))
        else:
            print(value.value)
        return EXIT_OK
    if args.json:
        print(json.dumps(
            {
                name: {"value": value.value, "resolved": value.resolved, "sensitive": value.sensitive}
                for name, value in outputs.items()
            },
            indent=2,
        ))
    else:
        print(render_outputs(outputs))
    return EXIT_OK


def _cmd_show(args: argparse.Namespace, settings: Settings) -> int:
    snapshot = _state_service(args, settings).show()
    if args.json:
        print(snapshot.model_dump_json(indent=2))
    else:
        print(render_snapshot(snapshot))
    return EXIT_OK


def _cmd_state(args: argparse.Namespace, settings: Settings) -> int:
    for node_id in _state_service(args, settings).state_list():
        print(node_id)
    return EXIT_OK


def render_plan(plan: Plan) -> str:
    """Human readable plan, one block per changed node."""
    lines: list[str] = []
    ordered = list(plan.destroy_order) + [
        node_id for node_id in plan.create_order if node_id not in plan.destroy_order
    ]
    for node_id in ordered:
        change = plan.changes[node_id]
        if change.action == Action.NOOP:
            continue
        header = f"  {_SYMBOLS[change.action]} {node_id}"
        if change.reason:
            header += f" ({change.reason})"
        lines.append(header)
        if change.action == Action.CREATE:
            for name, value in change.after.items():
                lines.append(f"      {name} = {render_value(value)}")
        elif change.action in (Action.UPDATE, Action.REPLACE):
            for name in change.changed:
                before = render_value(change.before.get(name))
                after = render_value(change.after.get(name))
                lines.append(f"      {name}: {before} -> {after}")

    summary = plan.summary()
    if not lines:
        return "No changes. Infrastructure matches the configuration."
    lines.insert(0, "Planned actions:\n")
    lines.append(
        f"\nPlan: {summary['create']} to create, {summary['update']} to update, "
        f"{summary['replace']} to replace, {summary['delete']} to delete."
    )
    return "\n".join(lines)


def render_result(result: ApplyResult, destroy: bool) -> str:
    counts = {action: 0 for action in Action}
    for outcome in result.outcomes.values():
        if outcome.error is None:
            counts[outcome.action] += 1
    if destroy:
        return f"\nDestroy complete! Resources: {counts[Action.DELETE]} destroyed."
    return (
        f"\nApply complete! Resources: {counts[Action.CREATE]} added, "
        f"{counts[Action.UPDATE]} changed, {counts[Action.REPLACE]} replaced, "
        f"{counts[Action.DELETE]} destroyed."
    )


def render_outputs(outputs: dict[str, OutputValue]) -> str:
    return "\n".join(f"{name} = {value.display()}" for name, value in outputs.items())


def render_snapshot(snapshot: StateSnapshot) -> str:
    if not snapshot.resources:
        return "The state is empty."
    blocks: list[str] = []
    for node_id, entry in snapshot.resources.items():
        lines = [f"# {node_id} ({entry.status.value})"]
        if entry.provider_id:
            lines.append(f"    id = {entry.provider_id}")
        for name, value in entry.attributes.items():
            if name != "id":
                lines.append(f"    {name} = {render_value(value)}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)
