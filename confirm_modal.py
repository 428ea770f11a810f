"""
Confirmation Modal

Yes/No dialog guarding destructive actions. Dismisses with True when
confirmed.
"""

from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Static


class ConfirmModal(ModalScreen[bool]):
    """Modal asking the user to confirm an action"""

    CSS = """
    ConfirmModal {
        align: center middle;
    }

    #confirm_container {
        width: 70;
        height: auto;
        border: thick $error;
        background: $surface;
        padding: 1 2;
    }

    #confirm_title {
        text-style: bold;
        color: $error;
        margin-bottom: 1;
    }

    #confirm_buttons {
        height: 3;
        align: center middle;
        margin-top: 1;
    }

    Button {
        margin: 0 1;
    }
    """

    BINDINGS = [
        ("escape", "cancel", "Cancel"),
        ("n", "cancel", "No"),
        ("y", "confirm", "Yes"),
    ]

    def __init__(self, title: str, message: str, confirm_label: str = "Delete", **kwargs):
        super().__init__(**kwargs)
        self.confirm_title = title
        self.message = message
        self.confirm_label = confirm_label

    def compose(self) -> ComposeResult:
        with Vertical(id="confirm_container"):
            yield Static(self.confirm_title.replace('[', '\\['), id="confirm_title")
            yield Static(self.message.replace('[', '\\['), id="confirm_message")
            with Horizontal(id="confirm_buttons"):
                yield Button("Cancel", id="cancel")
                yield Button(self.confirm_label, id="confirm", variant="error")

    def on_mount(self) -> None:
        self.query_one("#cancel", Button).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "confirm")

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)
