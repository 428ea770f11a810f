"""
Info Modal

About screen showing the application version and where its configuration
lives.
"""

from typing import Any, Dict, Optional

from textual.app import ComposeResult
from textual.containers import Center, Middle
from textual.screen import ModalScreen
from textual.widgets import Button, Label, Static

APP_VERSION = "0.1.0"


class InfoModal(ModalScreen):
    """Modal screen displaying application information"""

    BINDINGS = [
        ("escape", "close", "Close"),
        ("i", "close", "Close"),
        ("ctrl+q", "quit", "Quit"),
    ]

    CSS = """
    InfoModal {
        align: center middle;
    }

    #info_dialog {
        layout: grid;
        grid-size: 2;
        grid-gutter: 1 2;
        grid-rows: auto;
        padding: 1 2;
        width: 90;
        height: auto;
        border: thick $primary;
        background: $surface;
    }

    .info_label {
        content-align: right middle;
        text-align: right;
        color: $text;
        margin: 0;
        padding-right: 1;
    }

    .info_value {
        content-align: left middle;
        text-align: left;
        color: $accent;
        margin: 0;
        padding-left: 1;
    }

    .info_header {
        column-span: 2;
        content-align: center middle;
        text-align: center;
        color: $warning;
        text-style: bold;
        margin: 1 0;
    }

    #info_close_button {
        column-span: 2;
        margin: 1 0;
    }
    """

    def __init__(self, config_info: Optional[Dict[str, Any]] = None, mock_mode: bool = False,
                 connected_count: int = 0, **kwargs):
        super().__init__(**kwargs)
        self.config_info = config_info or {}
        self.mock_mode = mock_mode
        self.connected_count = connected_count

    def info_rows(self):
        rows = [
            ("Version:", APP_VERSION),
            ("Mode:", "Mock registries (in-memory)" if self.mock_mode else "Live registries"),
            ("Connected:", str(self.connected_count)),
        ]
        if self.config_info:
            rows.extend([
                ("Config File:", self.config_info.get("config_file", "unknown")),
                ("Stored Registries:", str(self.config_info.get("registry_count", 0))),
                ("Last Saved:", str(self.config_info.get("last_updated", "never"))),
                ("Backup:", "present" if self.config_info.get("backup_exists") else "none"),
            ])
        else:
            rows.append(("Config File:", "not persisted"))
        return rows

    def compose(self) -> ComposeResult:
        with Center():
            with Middle():
                with Static(id="info_dialog"):
                    yield Label("Wharf - Container Registry Dashboard", classes="info_header")
                    for label, value in self.info_rows():
                        yield Label(label, classes="info_label")
                        yield Label(value.replace('[', '\\['), classes="info_value")
                    yield Button("Close", variant="primary", id="info_close_button")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "info_close_button":
            self.dismiss()

    def action_close(self) -> None:
        self.dismiss()

    def action_quit(self) -> None:
        self.app.exit()
