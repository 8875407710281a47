"""Plan review screen for ajail --review."""

from __future__ import annotations

import logging
import shlex

from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, VerticalScroll
from textual.widgets import Button, DataTable, Label, Static, TabbedContent, TabPane

from bwrap import BubblewrapSerializer, BubblewrapSummarizer
from model import BindingMode, JailConfig

log = logging.getLogger(__name__)

# Widget IDs
HEADER_TITLE = "header-title"
PLAN_TABLE = "plan-table"
COMMAND_PREVIEW = "command-preview"
EXPLANATION = "explanation"
STATUS_BAR = "status-bar"
EXECUTE_BTN = "execute-btn"
CANCEL_BTN = "cancel-btn"

MODE_LABELS = {
    BindingMode.EPHEMERAL: "discard writes",
    BindingMode.PERSISTENT: "persist writes",
    BindingMode.HIDDEN: "hidden",
}

APP_CSS = """
#header-container {
    height: 1;
    padding: 0 1;
}
#plan-table {
    height: 1fr;
}
#command-preview {
    padding: 1;
}
#explanation {
    padding: 0 1;
}
#footer-buttons {
    height: 3;
    dock: bottom;
}
#status-bar {
    width: 1fr;
    padding: 1;
}
"""


class PlanReviewApp(App):
    """Shows a composed jail and asks whether to run it."""

    TITLE = "ajail"
    ENABLE_COMMAND_PALETTE = False
    CSS = APP_CSS

    BINDINGS = [
        Binding("enter", "execute", "Run", show=True, priority=True),
        Binding("escape", "cancel", "Cancel", show=True),
    ]

    def __init__(self, config: JailConfig) -> None:
        super().__init__()
        self.config = config
        self._execute_command = False

    def compose(self) -> ComposeResult:
        log.info("Reviewing plan: %d bindings", len(self.config.bindings))

        yield Horizontal(
            Label(f"ajail - {shlex.join(self.config.command)}", id=HEADER_TITLE),
            id="header-container",
        )

        with TabbedContent(id="review-tabs"):
            with TabPane("Mounts", id="mounts-tab"):
                yield DataTable(id=PLAN_TABLE, cursor_type="row", zebra_stripes=True)
            with TabPane("Summary", id="summary-tab"):
                with VerticalScroll():
                    yield Static(BubblewrapSerializer(self.config).serialize_colored(), id=COMMAND_PREVIEW)
                    yield Static(BubblewrapSummarizer(self.config).summarize_colored(), id=EXPLANATION)

        yield Horizontal(
            Static(f"Root fs: {self.config.rootfs}", id=STATUS_BAR),
            Button("Run [Enter]", id=EXECUTE_BTN, variant="success"),
            Button("Cancel [Esc]", id=CANCEL_BTN, variant="error"),
            id="footer-buttons",
        )

    def on_mount(self) -> None:
        table = self.query_one(f"#{PLAN_TABLE}", DataTable)
        table.add_columns("Jail path", "Mode", "Source")
        for binding in self.config.all_bindings():
            source = "(empty)" if binding.mode == BindingMode.HIDDEN else binding.source
            table.add_row(binding.dest, MODE_LABELS[binding.mode], source, key=binding.dest)
        table.focus()

    @on(Button.Pressed, f"#{EXECUTE_BTN}")
    def on_execute_pressed(self, event: Button.Pressed) -> None:
        self.action_execute()

    @on(Button.Pressed, f"#{CANCEL_BTN}")
    def on_cancel_pressed(self, event: Button.Pressed) -> None:
        self.action_cancel()

    def action_execute(self) -> None:
        """Run the jail."""
        self._execute_command = True
        self.exit(True)

    def action_cancel(self) -> None:
        """Exit without running."""
        self._execute_command = False
        self.exit(False)


def review_plan(config: JailConfig) -> bool:
    """Show the review screen; True if the user chose to run."""
    app = PlanReviewApp(config)
    app.run()
    return app._execute_command
