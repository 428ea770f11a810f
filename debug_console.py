"""
Debug Console Screen

Lists the HTTP exchanges recorded by the RegistryManager, newest last, with
the headers and a response preview of the selected call.
"""

from urllib.parse import urlparse

from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.widgets import DataTable, Static, Header, Footer
from textual.screen import Screen

from registry_manager import RegistryManager
from registry_models import format_bytes


def split_call_url(url: str):
    """Split a recorded URL into (base URL, endpoint)"""
    if "/v2/" in url:
        base_url, endpoint = url.split("/v2/", 1)
        return base_url, "/v2/" + endpoint
    parsed = urlparse(url)
    if parsed.scheme and parsed.netloc:
        return f"{parsed.scheme}://{parsed.netloc}", parsed.path or "/"
    return "Unknown", url


def format_status(status_code: int) -> str:
    if status_code == 0:
        return "❌ ERR"
    if 200 <= status_code < 300:
        return f"✅ {status_code}"
    return f"⚠ {status_code}"


class ApiCallDetailsPanel(Static):
    """Right panel showing detailed API call information"""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.call_info = None

    def update_call_info(self, call_info: dict):
        """Update the displayed API call information"""
        self.call_info = call_info
        if not call_info:
            self.update("Select an API call to view details")
            return

        # Escape opening markup bracket
        url = str(call_info.get('url', 'Unknown')).replace('[', '\\[')
        method = str(call_info.get('method', 'UNKN'))
        status_code = call_info.get('status_code', 0)
        content_display = str(call_info.get('content_preview') or 'No content').replace('[', '\\[')

        details = f"""Method: {method}
URL: {url}
{format_status(status_code)}
Duration: {call_info.get('duration_ms', 'Unknown')}ms
Size: {call_info.get('size_bytes', 'Unknown')} bytes
Time: {call_info.get('timestamp', 'Unknown')}
"""
        if call_info.get('error'):
            details += f"\nError: {str(call_info['error']).replace('[', chr(92) + '[')}\n"

        details += f"""
Response Headers:
{self._format_headers(call_info.get('headers', {}))}

cURL Command:
curl -X {method} -i "{url}"

Response Preview:
{content_display}"""
        self.update(details)

    def _format_headers(self, headers: dict) -> str:
        """Format headers for display"""
        if not headers:
            return "No headers"

        formatted = []
        for key, value in list(headers.items())[:8]:
            formatted.append(f"{key}: {value}".replace('[', '\\['))

        if len(headers) > 8:
            formatted.append(f"... and {len(headers) - 8} more")

        return "\n".join(formatted)


class DebugConsoleScreen(Screen):
    """Screen for viewing API call debug information"""

    CSS = """
    Screen {
        layout: horizontal;
    }

    #api_call_list {
        width: 60%;
        border: solid $primary;
        margin: 1;
    }

    #api_call_details {
        width: 40%;
        border: solid $secondary;
        margin: 1;
        padding: 1;
    }
    """

    BINDINGS = [
        ("escape", "back", "Back"),
        ("backspace", "back", "Back"),
        ("ctrl+q", "quit", "Quit"),
        ("f5", "refresh", "Refresh"),
        ("ctrl+x", "purge", "Purge All"),
        ("ctrl+d", "no_action", ""),
    ]

    def __init__(self, manager: RegistryManager, **kwargs):
        super().__init__(**kwargs)
        self.manager = manager
        self.api_call_data = []

    def compose(self) -> ComposeResult:
        """Create the debug console layout"""
        yield Header()
        with Horizontal():
            api_table = DataTable(id="api_call_list", cursor_type="row")
            api_table.add_columns("Time", "Method", "Base URL", "Endpoint", "Status", "Size", "Duration")
            yield api_table

            yield ApiCallDetailsPanel(id="api_call_details")
        yield Footer()

    def on_mount(self) -> None:
        self.title = "Debug Console - API Calls"
        self.load_api_calls()
        if not self.api_call_data:
            self.query_one("#api_call_details", ApiCallDetailsPanel).update("No API calls recorded yet")

    def load_api_calls(self) -> None:
        """Load API calls from the registry manager"""
        api_table = self.query_one("#api_call_list", DataTable)
        api_table.clear()
        self.api_call_data = list(self.manager.api_call_log)

        for call in self.api_call_data:
            base_url, endpoint = split_call_url(call.get("url", ""))
            api_table.add_row(
                call.get("timestamp", "Unknown"),
                call.get("method", "UNKN"),
                base_url,
                endpoint,
                format_status(call.get("status_code", 0)),
                format_bytes(call.get("size_bytes", 0)),
                f"{call.get('duration_ms', 0):,}ms",
            )

        # Auto-select most recent call
        if self.api_call_data:
            last_row = len(self.api_call_data) - 1
            api_table.move_cursor(row=last_row)
            self.update_details_for_row(last_row)

    def update_details_for_row(self, row_index: int) -> None:
        details_panel = self.query_one("#api_call_details", ApiCallDetailsPanel)
        if 0 <= row_index < len(self.api_call_data):
            details_panel.update_call_info(self.api_call_data[row_index])

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        self.update_details_for_row(event.cursor_row)

    def action_refresh(self) -> None:
        """Refresh API call list"""
        self.load_api_calls()
        self.notify("API call list refreshed")

    def action_back(self) -> None:
        self.app.pop_screen()

    def action_purge(self) -> None:
        """Purge all API call data"""
        self.manager.api_call_log.clear()
        self.notify("API call log purged", severity="warning")
        self.load_api_calls()
        self.query_one("#api_call_details", ApiCallDetailsPanel).update("No API calls recorded yet")

    def action_no_action(self) -> None:
        """Keeps Ctrl+D from stacking another debug console"""
        pass

    def action_quit(self) -> None:
        self.app.exit()
