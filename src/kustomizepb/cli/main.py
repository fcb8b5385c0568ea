#!/usr/bin/env python3
"""
KUSTOMIZEPB CLI
---------------
Translates command-line flags into a rollout:

1. Variable loading (--envfile)
2. Cluster sanity check (--known-node), pre-flight & playbook validation
3. Ordered execution with live event output

The first Ctrl-C cancels the run at the next safe point; a second one
aborts immediately.

Known errors end the process with exit code 1 and a readable message.
Anything else is a bug and is allowed to surface with its traceback.

Author: KustomizePB Team
Date: 2026-10-17
"""

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from kustomizepb.cli.formatter import EventPresenter, print_summary
from kustomizepb.core.engine import ExecutionEngine
from kustomizepb.core.errors import KnownError, PlaybookInvalid, RunCancelled
from kustomizepb.core.events import EventQueue
from kustomizepb.core.run import RunOptions, load_run
from kustomizepb.kube.access import KubectlAccessor
from kustomizepb.kube.tools import KubectlApplier, KustomizeBuilder
from kustomizepb.playbook.envsubst import load_variables

console = Console()

__version__ = "0.1.0"

# Bounded so a stalled terminal applies backpressure instead of growing memory
EVENT_QUEUE_SIZE = 256


def default_kubeconfig() -> str:
    env = os.environ.get("KUBECONFIG", "")
    if env:
        # like kubectl, the first entry of a path list wins
        return env.split(os.pathsep)[0]
    return str(Path.home() / ".kube" / "config")


class KustomizePlaybookCLI:
    """CLI wrapper that turns arguments into a Run and executes it."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="kustomizepb",
            description="KustomizePB - ordered, condition-gated rollout of kustomizations",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.cancel = threading.Event()
        self._setup_args()

    def _setup_args(self):
        self.parser.add_argument("-V", "--version", action="version", version=f"kustomizepb v{__version__}")
        self.parser.add_argument("directory", help="Directory containing kustomizationplaybook.yaml")
        self.parser.add_argument("--kubeconfig", default=default_kubeconfig(),
                                 help="Path to the kubeconfig file (default: $KUBECONFIG or ~/.kube/config)")
        self.parser.add_argument("--context", default="", help="kubeconfig context to use")
        self.parser.add_argument("--envfile", default="", help="dotenv file providing variables for envsubst")
        self.parser.add_argument("--known-node", default="",
                                 help="Name of a cluster node that must exist, guards against the wrong cluster")
        self.parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    def print_header(self, directory: str):
        console.print(Panel.fit(
            f"[bold cyan]KustomizePB v{__version__}[/bold cyan]\n"
            f"Playbook: [white]{escape(directory)}[/white]",
            title="[bold white]Kustomization Playbook[/bold white]",
            border_style="cyan"
        ))

    def _on_interrupt(self, signum, frame):
        # first Ctrl-C stops at the next safe point, a second one aborts
        if self.cancel.is_set():
            raise KeyboardInterrupt
        self.cancel.set()

    def execute(self, args: argparse.Namespace) -> None:
        if threading.current_thread() is not threading.main_thread():
            self._execute(args)
            return

        previous = signal.signal(signal.SIGINT, self._on_interrupt)
        try:
            self._execute(args)
        finally:
            signal.signal(signal.SIGINT, previous)

    def _execute(self, args: argparse.Namespace) -> None:
        accessor = KubectlAccessor(kubeconfig=args.kubeconfig, context=args.context)
        variables = load_variables(args.envfile) if args.envfile else {}

        options = RunOptions(
            directory=args.directory,
            variables=variables,
            known_node=args.known_node,
        )
        run = load_run(options, accessor, cancel=self.cancel)

        events = EventQueue(maxsize=EVENT_QUEUE_SIZE)
        presenter = EventPresenter(events, console).start()
        engine = ExecutionEngine(
            accessor=accessor,
            builder=KustomizeBuilder(run.kustomization_path),
            applier=KubectlApplier(kubeconfig=args.kubeconfig, context=args.context),
            events=events,
            cancel=self.cancel,
        )
        try:
            engine.run(run)
        finally:
            presenter.stop()
            print_summary(run.components, console)

    def run(self, argv: Optional[List[str]] = None) -> int:
        args = self.parser.parse_args(argv)
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        self.print_header(args.directory)

        try:
            self.execute(args)
        except PlaybookInvalid as e:
            for error in e.errors:
                console.print(f"[bold red]{escape(error.message)}[/bold red]")
            return 1
        except KnownError as e:
            console.print(f"[bold red]{escape(e.message)}[/bold red]")
            return 1
        except RunCancelled:
            console.print("\n[bold red]Run cancelled.[/bold red]")
            return 1

        console.print("[bold green]All components applied.[/bold green]")
        return 0


def main():
    """Application entry point with interrupt handling."""
    cli = KustomizePlaybookCLI()
    try:
        sys.exit(cli.run())
    except KeyboardInterrupt:
        cli.cancel.set()
        console.print("\n[bold red]Terminated by user.[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
