"""
Registry Configuration Modal

Form for adding a registry (URL plus optional credentials) with a live
connection test against GET /v2/. Dismisses with the entered configuration,
or None when cancelled.
"""

from typing import Callable, Optional

from textual.app import ComposeResult
from textual.containers import Vertical, Horizontal, ScrollableContainer
from textual.widgets import Static, Button, Input
from textual.screen import ModalScreen

from registry_client import RegistryClient
from registry_models import RegistryConfig

# Username conventions of well-known hosted registries
REGISTRY_HINTS = {
    'quay.io': ('namespace+robotname (e.g., myorg+myrobot)', lambda username: '+' in username),
    'gcr.io': ('_token or _json_key', lambda username: username in ('_token', '_json_key')),
    'amazonaws.com': ('AWS', lambda username: username == 'AWS'),
    'azurecr.io': ('service principal ID or admin user', lambda username: bool(username)),
    'harbor': ('Harbor user or robot$project+name', lambda username: bool(username)),
}


def normalize_registry_url(url: str) -> str:
    """Default to https:// when the scheme is omitted"""
    url = url.strip().rstrip("/")
    if url and "://" not in url:
        url = f"https://{url}"
    return url


def get_registry_hints(url: str, username: str) -> str:
    """Registry-specific username hint, if the host is recognised"""
    for marker, (expected, check) in REGISTRY_HINTS.items():
        if marker in url.lower():
            status = "✅ Looks right" if check(username or "") else "⚠️  Check format"
            return f"\n🔍 {marker}\n   Username: {expected}\n   Current: {status}"
    return ""


class RegistryConfigModal(ModalScreen[Optional[dict]]):
    """Modal screen for adding a registry with live testing"""

    CSS = """
    RegistryConfigModal {
        align: center middle;
    }

    #config_container {
        width: 70%;
        height: 80%;
        border: solid $primary;
        background: $surface;
        layout: vertical;
    }

    #config_form {
        padding: 2;
        height: 1fr;
    }

    .section_title {
        height: 1;
        text-align: left;
        background: $boost;
        color: $text;
        margin: 1 0 0 0;
        padding: 0 1;
    }

    .form_input {
        margin: 0 0 1 0;
    }

    #test_status {
        height: 8;
        border: solid $accent;
        margin: 1 0;
        padding: 1;
        background: $surface-darken-1;
    }

    #button_row {
        layout: horizontal;
        height: 3;
        align: center middle;
        margin-top: 1;
    }

    Button {
        margin: 0 1;
    }

    .modal_title {
        height: 1;
        text-align: center;
        background: $primary;
        color: $text;
        margin: 0 0 1 0;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("escape", "cancel", "Cancel"),
        ("ctrl+q", "quit", "Quit"),
        ("ctrl+s", "save", "Save"),
        ("ctrl+t", "test", "Test"),
    ]

    def __init__(self, client_factory: Callable[[RegistryConfig], RegistryClient],
                 registry_data: Optional[dict] = None, **kwargs):
        super().__init__(**kwargs)
        self.client_factory = client_factory
        self.registry_data = registry_data or {}

    def compose(self) -> ComposeResult:
        """Create the modal layout"""
        with Vertical(id="config_container"):
            yield Static("Add Registry", classes="modal_title")

            with ScrollableContainer(id="config_form"):
                yield Static("🌐 Registry", classes="section_title")
                yield Input(
                    placeholder="Registry URL (e.g., https://registry.example.com)",
                    id="url",
                    value=self.registry_data.get('url', ''),
                    classes="form_input"
                )

                yield Static("🔧 Authentication (optional)", classes="section_title")
                yield Input(
                    placeholder="Username",
                    id="username",
                    value=self.registry_data.get('username') or '',
                    classes="form_input"
                )
                yield Input(
                    placeholder="Password/Token",
                    password=True,
                    id="password",
                    classes="form_input"
                )

                yield Static("🧪 Test Results", classes="section_title")
                with ScrollableContainer(id="test_status"):
                    yield Static("Press Test to verify connection...", id="test_output")

            with Horizontal(id="button_row"):
                yield Button("Cancel", id="cancel")
                yield Button("Test Connection", id="test", variant="success")
                yield Button("Save", id="save", variant="primary")

    def on_mount(self) -> None:
        self.query_one("#url", Input).focus()

    def get_form_values(self) -> dict:
        return {
            "url": normalize_registry_url(self.query_one("#url", Input).value),
            "username": self.query_one("#username", Input).value.strip() or None,
            "password": self.query_one("#password", Input).value or None,
        }

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "test":
            self.action_test()
        elif event.button.id == "save":
            self.action_save()
        elif event.button.id == "cancel":
            self.action_cancel()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Enter in any field submits the form"""
        self.action_save()

    def action_test(self) -> None:
        self.run_worker(self.test_connection(), exclusive=True)

    async def test_connection(self) -> None:
        """Ping the registry with the current form values"""
        test_output = self.query_one("#test_output", Static)
        test_button = self.query_one("#test", Button)
        values = self.get_form_values()

        if not values["url"]:
            test_output.update("❌ Registry URL is required")
            return

        test_button.label = "Testing..."
        test_button.variant = "warning"
        test_output.update(f"🔄 Testing {values['url']}/v2/ ...")

        client = self.client_factory(RegistryConfig(**values))
        try:
            online = await client.ping()
        finally:
            await client.aclose()
            self.reset_test_button()

        auth_mode = "Basic auth" if client.config.has_credentials else "anonymous"
        hints = get_registry_hints(values["url"], values["username"])
        if online:
            test_output.update(f"✅ Connection successful\n   Registry: {values['url']}\n   Auth: {auth_mode}{hints}")
        else:
            test_output.update(
                f"❌ Connection failed\n   Registry: {values['url']}\n   Auth: {auth_mode}\n"
                f"   See the debug console (Ctrl+D) for the HTTP exchange{hints}"
            )

    def reset_test_button(self) -> None:
        test_button = self.query_one("#test", Button)
        test_button.variant = "success"
        test_button.label = "Test Connection"

    def action_save(self) -> None:
        """Validate and return the configuration"""
        values = self.get_form_values()
        if not values["url"]:
            self.notify("Registry URL is required", severity="error")
            return
        self.dismiss(values)

    def action_cancel(self) -> None:
        self.dismiss(None)

    def action_quit(self) -> None:
        self.app.exit()
