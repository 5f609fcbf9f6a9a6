"""
workerctl - create, start, stop and clean up a sandbox worker.

Usage:
  workerctl new [--path P] [--image IMG]
  workerctl up [--path P] [--image IMG] [--options K=V,...] [--detach]
  workerctl down [--path P]
  workerctl status [--path P]
  workerctl force-cleanup [--path P]
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

import structlog
from dotenv import load_dotenv

# Load .env file if it exists, before settings are read
load_dotenv(Path.cwd() / ".env")

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import WorkerConfig, dump_config_str, load_config, settings
from .config.overrides import apply_overrides
from .models.environment import EnvironmentLayout
from .models.errors import ConfigurationError, ProcessControlError, WorkerAdminError
from .services.environment import EnvironmentInitializer
from .services.worker import (
    CleanupReport,
    ForceCleanup,
    ReadinessPoller,
    ShutdownController,
    StepOutcome,
    WorkerLauncher,
    build_worker_command,
    fetch_status,
    read_worker_pid,
)
from .utils.logging import setup_logging

console = Console()
logger = structlog.get_logger(__name__)


# ============================================================================
# Helpers
# ============================================================================

def resolve_environment(path: Optional[str]) -> EnvironmentLayout:
    """Environment named by --path, or the default one in the current directory."""
    return EnvironmentLayout.from_path(path or settings.default_path)


def print_init_summary(env: EnvironmentLayout, config: WorkerConfig) -> None:
    console.print(f"Working Directory: [bold]{env.root}[/bold]\n")
    console.print(Panel(dump_config_str(config).rstrip(), title="Worker Defaults"))
    console.print(f"You may modify the defaults here: {env.config_path}\n")
    console.print('You may now start a server using the "workerctl up" command')


def init_environment(env: EnvironmentLayout, image: Optional[str]) -> WorkerConfig:
    image = image or settings.default_image
    console.print(f"Init environment at {env.root}, using Docker image {image} as base")
    config = EnvironmentInitializer().initialize(env.root, image)
    print_init_summary(env, config)
    return config


def discard_stale_overrides(env: EnvironmentLayout) -> None:
    """Drop overrides left by an earlier ``up -o`` so every command reads config.json."""
    try:
        env.overrides_path.unlink()
    except FileNotFoundError:
        return
    except OSError as e:
        raise ConfigurationError(
            f"Could not remove stale overrides {env.overrides_path}: {e}",
            details={"path": str(env.overrides_path)},
        ) from e
    logger.info("Removed stale config overrides", path=str(env.overrides_path))


def build_cleanup_table(report: CleanupReport) -> Table:
    styles = {
        StepOutcome.OK: "green",
        StepOutcome.NOT_FOUND: "yellow",
        StepOutcome.FAILED: "red",
    }
    table = Table(title="Force Cleanup", box=box.ROUNDED)
    table.add_column("Phase", style="cyan")
    table.add_column("Action")
    table.add_column("Target", overflow="fold")
    table.add_column("Outcome")
    table.add_column("Error", style="dim", overflow="fold")

    for step in report.steps:
        table.add_row(
            step.phase,
            step.action,
            step.target,
            Text(step.outcome.value, style=styles[step.outcome]),
            step.error or "",
        )
    return table


# ============================================================================
# Commands
# ============================================================================

def cmd_new(args) -> int:
    """Create a worker environment."""
    env = resolve_environment(args.path)
    init_environment(env, args.image)
    return 0


def cmd_up(args) -> int:
    """Start a worker, creating its environment first when needed."""
    env = resolve_environment(args.path)

    if not env.exists():
        console.print(f"No environment found at {env.root}")
        init_environment(env, args.image)
    else:
        console.print(f"Using existing environment at {env.root}")

    config_path = env.config_path
    if args.options:
        apply_overrides(config_path, env.overrides_path, args.options)
        config_path = env.overrides_path
    else:
        discard_stale_overrides(env)

    config = load_config(config_path)

    if not args.detach:
        from .main import serve_forever

        serve_forever(config)
        raise ProcessControlError("worker server returned unexpectedly")

    launcher = WorkerLauncher()
    handle = launcher.launch_detached(
        env, build_worker_command(env.root, args.image, args.options)
    )
    console.print(
        f"Starting worker: pid={handle.pid}, port={config.worker_port}, log={handle.log_path}"
    )
    ReadinessPoller().wait_ready(handle, config.worker_port)
    console.print("[green]ready[/green]")
    return 0


def cmd_down(args) -> int:
    """Stop the worker recorded in the environment's PID file."""
    env = resolve_environment(args.path)
    config = load_config(env.active_config_path())
    pid = read_worker_pid(config)

    console.print(f"Killing worker process with PID {pid}")
    ShutdownController().graceful_stop(pid)
    console.print("[green]Worker process stopped successfully[/green]")
    return 0


def cmd_status(args) -> int:
    """Ping the worker."""
    env = resolve_environment(args.path)
    config = load_config(env.active_config_path())

    console.print("Worker Ping:")
    url, body, status_line = fetch_status(config)
    console.print(f"  {url} => {body.strip()} [{status_line}]", markup=False)
    console.print()
    return 0


def cmd_force_cleanup(args) -> int:
    """Reclaim cgroups, mounts and the PID file. Never fails."""
    env = resolve_environment(args.path)
    report = ForceCleanup().run(env)

    console.print()
    console.print(build_cleanup_table(report))
    if report.failures:
        console.print(
            f"[yellow]{len(report.failures)} step(s) did not complete; "
            "see the table above[/yellow]"
        )
    return 0


# ============================================================================
# Entry point
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workerctl",
        description="Sandbox worker lifecycle manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s new -p ./worker-a                       # Create an environment
  %(prog)s up -p ./worker-a -d                     # Start in the background
  %(prog)s up -p ./worker-a -o limits.mem_mb=128   # Foreground with overrides
  %(prog)s status -p ./worker-a
  %(prog)s down -p ./worker-a
  %(prog)s force-cleanup -p ./worker-a             # After a crash
""",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_path(p):
        p.add_argument("-p", "--path", help="Path location for the worker environment")

    def add_image(p):
        p.add_argument("-i", "--image", help="Name of Docker image to use for base")

    new_p = subparsers.add_parser(
        "new", help="Create a worker environment with default config and base image"
    )
    add_path(new_p)
    add_image(new_p)

    up_p = subparsers.add_parser(
        "up", help="Start a worker (runs 'new' first if the environment is missing)"
    )
    add_path(up_p)
    add_image(up_p)
    up_p.add_argument(
        "-o",
        "--options",
        help="Override options with: -o opt1=val1,opt2=val2,opt3.subopt31=val3",
    )
    up_p.add_argument(
        "-d", "--detach", action="store_true", help="Run worker in background"
    )

    down_p = subparsers.add_parser("down", help="Stop the worker process")
    add_path(down_p)

    status_p = subparsers.add_parser("status", help="Check status of a worker process")
    add_path(status_p)

    cleanup_p = subparsers.add_parser(
        "force-cleanup",
        help="Cleanup cgroups and mount points (only needed after a crash)",
    )
    add_path(cleanup_p)

    return parser


HANDLERS = {
    "new": cmd_new,
    "up": cmd_up,
    "down": cmd_down,
    "status": cmd_status,
    "force-cleanup": cmd_force_cleanup,
}


def main(argv=None) -> int:
    setup_logging()

    args = build_parser().parse_args(argv)

    try:
        return HANDLERS[args.command](args)
    except WorkerAdminError as e:
        logger.debug("Command failed", command=args.command, **e.to_dict())
        console.print(Text.assemble(("Error: ", "red"), e.message))
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
