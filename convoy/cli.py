"""
Convoy CLI entry point.

Usage:
    convoy run      --config convoy.yaml          # ROS2 fleet controller
    convoy gateway  --config convoy.yaml          # HTTP gateway
    convoy demo                                   # Simulated two-robot crossing
    convoy validate --config convoy.yaml          # Check a fleet config
"""

import argparse
import os
import sys
import traceback

from rich.console import Console
from rich.table import Table

from convoy.errors import ConvoyError

# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _console() -> Console:
    return Console(no_color=bool(os.environ.get("NO_COLOR", "")), highlight=False)


def cmd_run(args) -> None:
    """Run the ROS2 fleet controller."""
    from convoy.main import run, setup_logging

    setup_logging(args.verbose)
    sys.exit(run(args.config))


def cmd_gateway(args) -> None:
    """Start the FastAPI gateway server."""
    from convoy.api import main as run_gateway

    argv = ["convoy.api"]
    if args.config:
        argv += ["--config", args.config]
    if args.host:
        argv += ["--host", args.host]
    if args.port:
        argv += ["--port", str(args.port)]
    sys.argv = argv
    run_gateway()


def cmd_demo(args) -> None:
    """Simulate two robots crossing with a synchronization barrier."""
    from convoy.main import setup_logging
    from convoy.sim import crossing_simulator

    setup_logging(args.verbose)
    console = _console()
    sim = crossing_simulator(dt=args.dt)
    console.print("\n[bold cyan]  Convoy demo[/] [dim]robot1 waits for robot0 to clear (2, 0)[/]\n")
    ticks = sim.run_until_complete(max_steps=args.steps)
    console.print(render_progress(sim))
    complete = sim.coordinator.all_complete()
    state = "[green]complete[/]" if complete else "[yellow]incomplete[/]"
    console.print(f"\n  {ticks} ticks ({ticks * sim.dt:.2f}s simulated), fleet {state}\n")
    sim.close()


def render_progress(sim) -> Table:
    """Build a rich table summarising each robot's run."""
    table = Table(title="Fleet progress", show_header=True)
    table.add_column("Robot", style="bold")
    table.add_column("Steps")
    table.add_column("Status")
    table.add_column("Step ticks", style="dim")
    table.add_column("Final pose")

    for name, status in sim.coordinator.status().items():
        ticks = [str(ev.tick) for ev in sim.events if ev.robot_id == name and ev.step_count > 0]
        pose = sim.robots[name].pose
        if status["complete"]:
            label = "[green]complete[/]"
        elif status["waiting"]:
            label = "[yellow]waiting[/]"
        else:
            label = status["mode"]
        table.add_row(
            name,
            f"{status['step_count']}/{status['path_length']}",
            label,
            ", ".join(ticks) or "—",
            f"({pose.x:.2f}, {pose.y:.2f}, {pose.theta:.2f})",
        )
    return table


def cmd_validate(args) -> None:
    """Validate a fleet config file."""
    import yaml

    from convoy.config import FleetConfig, validate_config

    console = _console()
    if not os.path.exists(args.config):
        console.print(f"\n  [red]Config not found:[/] {args.config}\n")
        sys.exit(1)

    with open(args.config) as fh:
        try:
            data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            console.print(f"\n  [red]YAML error:[/] {exc}\n")
            sys.exit(1)

    ok, errors = validate_config(data)
    if not ok:
        console.print(f"\n  [red]{len(errors)} problem(s)[/] in {args.config}:")
        for msg in errors:
            console.print(f"    - {msg}")
        console.print()
        sys.exit(1)

    cfg = FleetConfig.from_dict(data)
    settings = cfg.controller_settings()
    console.print(f"\n  [green]OK[/] {args.config}")
    console.print(f"    robots:  {', '.join(cfg.robot_names)}")
    console.print(
        f"    limits:  v={settings.max_linear_velocity} w={settings.max_angular_velocity} "
        f"goal_radius={settings.goal_radius}"
    )
    console.print(f"    gains:   Kp={settings.kp} Ki={settings.ki} Kd={settings.kd}\n")


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="convoy",
        description="Convoy - segment-following control for synchronized robot fleets",
        epilog=(
            "Quick start:\n"
            "  convoy demo                               # Try without hardware\n"
            "  convoy validate --config convoy.yaml      # Check your config\n"
            "  convoy run --config convoy.yaml           # Drive the fleet over ROS2\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    p_run = sub.add_parser("run", help="Run the ROS2 fleet controller")
    p_run.add_argument("--config", default=None, help="Fleet config file")

    p_gw = sub.add_parser("gateway", help="Start the HTTP gateway")
    p_gw.add_argument("--config", default=None, help="Fleet config file")
    p_gw.add_argument("--host", default=None)
    p_gw.add_argument("--port", type=int, default=None)

    p_demo = sub.add_parser("demo", help="Simulated two-robot crossing (no hardware)")
    p_demo.add_argument("--steps", type=int, default=2000, help="Max simulation ticks")
    p_demo.add_argument("--dt", type=float, default=0.05, help="Simulation step (s)")

    p_val = sub.add_parser("validate", help="Validate a fleet config")
    p_val.add_argument("--config", default="convoy.yaml", help="Fleet config file")

    return parser


def main(argv=None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "run": cmd_run,
        "gateway": cmd_gateway,
        "demo": cmd_demo,
        "validate": cmd_validate,
    }

    handler = commands.get(args.command)
    if handler:
        handler(args)
    else:
        parser.print_help()


def _friendly_error_handler() -> None:
    """Wrap main() with user-friendly error handling and contextual suggestions."""
    try:
        main()
    except KeyboardInterrupt:
        print("\n  Interrupted.\n")
        sys.exit(130)
    except SystemExit:
        raise
    except FileNotFoundError as exc:
        fname = exc.filename or str(exc)
        print(f"\n  File not found: {fname}")
        if str(fname).endswith((".yaml", ".yml")):
            print("  Hint: Run `convoy validate --config <file>` against an existing fleet config.")
        else:
            print("  Check the path and try again.")
        print()
        sys.exit(1)
    except ImportError as exc:
        dep = exc.name or str(exc)
        print(f"\n  Missing dependency: {dep}")
        suggestions = {
            "rich": "pip install rich",
            "yaml": "pip install pyyaml",
            "fastapi": "pip install fastapi uvicorn",
            "uvicorn": "pip install uvicorn",
            "rclpy": "Source your ROS2 distro (e.g. `source /opt/ros/humble/setup.bash`)",
        }
        hint = suggestions.get(dep)
        if hint:
            print(f"  Hint: {hint}")
        else:
            print("  Hint: pip install -e '.[test]'")
        print()
        sys.exit(1)
    except ConvoyError as exc:
        print(f"\n  {exc.code}: {exc.message}\n")
        sys.exit(1)
    except Exception as exc:
        print(f"\n  Unexpected error: {exc}")
        print("  Set LOG_LEVEL=DEBUG and try again for details.")
        print()
        if os.getenv("LOG_LEVEL", "").upper() == "DEBUG":
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    _friendly_error_handler()
