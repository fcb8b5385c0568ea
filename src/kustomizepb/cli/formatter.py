# src/kustomizepb/cli/formatter.py
import logging
import threading
from typing import List

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from kustomizepb.core.events import EventKind, EventQueue, RunEvent
from kustomizepb.core.models import RunComponent

logger = logging.getLogger("kustomizepb.cli")

console = Console()

# Message template and style per event kind
_STYLES = {
    EventKind.COMPONENT_STARTED: ("Running component '{name}'", "bold cyan"),
    EventKind.TESTING_APPLY_CONDITIONS: ("Testing apply conditions", "cyan"),
    EventKind.APPLY_CONDITIONS_NOT_FULFILLED: ("Conditions not fulfilled, component considered applied", "yellow"),
    EventKind.APPLYING: ("'{name}' is to be applied", "cyan"),
    EventKind.APPLY_RETRY: ("Apply failed (attempt {attempt}), retrying", "yellow"),
    EventKind.TESTING_READINESS: ("Testing readiness conditions", "cyan"),
    EventKind.READY: ("'{name}' is ready", "green"),
}


class EventPresenter:
    """
    The consumer side of the event channel.
    Drains an EventQueue on a background thread and renders each event.
    """

    def __init__(self, events: EventQueue, out: Console = console):
        self.events = events
        self.console = out
        self._thread = threading.Thread(target=self._drain, name="kustomizepb-events", daemon=True)

    def start(self):
        self._thread.start()
        return self

    def stop(self, timeout: float = 5.0):
        """Closes the channel and waits for pending events to be printed."""
        self.events.close()
        self._thread.join(timeout)

    def _drain(self):
        for event in self.events:
            # must keep draining, the queue is bounded
            try:
                self.render(event)
            except Exception:
                logger.exception("failed to render %s event of %s", event.kind.name, event.component)

    def render(self, event: RunEvent):
        template, style = _STYLES[event.kind]
        text = template.format(name=escape(event.component), attempt=event.attempt + 1)
        self.console.print(f"[{style}]{text}[/{style}]")
        if event.error:
            self.console.print(f"[dim]{escape(event.error)}[/dim]")


def print_summary(components: List[RunComponent], out: Console = console):
    """Final per-component status table."""
    table = Table(title="Rollout Report", show_lines=True, header_style="bold magenta")
    table.add_column("Component", style="cyan")
    table.add_column("Applied", justify="center")
    table.add_column("Ready", justify="center")

    for c in components:
        table.add_row(c.name, "✅" if c.applied else "❌", "✅" if c.ready else "❌")

    out.print(table)
