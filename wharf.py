#!/usr/bin/env python3
"""
Wharf TUI

Terminal dashboard for one or more Docker/OCI registries: connect
registries, browse the merged repository listing, inspect tags and
manifests, delete tags and repositories.
"""

import argparse
import logging
from typing import List, Optional, Sequence

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import DataTable, Static, Header, Footer, Button, Input
from textual.screen import Screen

from config_manager import ConfigManager
from confirm_modal import ConfirmModal
from connection_registry import CONNECTED, CONNECTING, ConnectionRegistry, Registry
from debug_console import DebugConsoleScreen
from info_modal import APP_VERSION, InfoModal
from mock_registry import build_demo_registries, mock_client_factory
from registry_client import RegistryClient
from registry_config_modal import RegistryConfigModal
from registry_errors import RegistryError
from registry_manager import RegistryManager
from registry_models import RegistryConfig
from tags_view import TagsScreen
from tui_debug_logger import DEFAULT_DEBUG_FILE, TUIDebugLogger

STATE_ICONS = {CONNECTED: "🟢", CONNECTING: "⏳"}


def describe_auth(registry: Registry) -> str:
    if registry.config.has_credentials:
        return "Basic"
    return "Anonymous"


class RegistryDetailsPanel(Vertical):
    """Right panel showing detailed registry information with connect button"""

    def compose(self) -> ComposeResult:
        yield Static("Select a registry to view details", id="registry_details_text")
        yield Button("Connect", id="connect_button", variant="primary", classes="connect_button", disabled=True)

    def update_registry_info(self, registry: Optional[Registry], repository_count: int = 0):
        details_text = self.query_one("#registry_details_text", Static)
        connect_button = self.query_one("#connect_button", Button)

        if registry is None:
            details_text.update("No registries configured\n\nPress 'a' to add one")
            connect_button.disabled = True
            return

        details = f"""📡 Endpoint: {registry.url}
🌐 API Check: {registry.url}/v2/
👤 User: {registry.username or 'Anonymous'}
🔐 Auth: {describe_auth(registry)}
🔗 Connection: {registry.state.title()}
💾 Stored: {'yes' if registry.persist else 'session only'}
🆔 ID: {registry.id}"""
        if registry.connected:
            details += f"\n\n📦 Repositories (all connected registries): {repository_count}"
        details_text.update(details.replace('[', '\\['))

        connect_button.disabled = registry.loading
        connect_button.label = "Disconnect" if registry.connected else "Connect"
        connect_button.variant = "warning" if registry.connected else "primary"

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "connect_button":
            self.screen.action_toggle_connection()


class RepositoryDetailsPanel(Static):
    """Right panel showing detailed repository information"""

    def update_repository_info(self, name: Optional[str], tags: Optional[List[str]], registry_urls: List[str]):
        if not name:
            self.update("Select a repository to view details")
            return

        details = f"📦 Repository: {name}\n"
        if tags is None:
            details += "🏷️ Tags: not loaded yet (Enter to browse)\n"
        else:
            details += f"🏷️ Tags: {len(tags)}\n"
            for tag in tags[:5]:
                details += f"   • {tag}\n"
            if len(tags) > 5:
                details += f"   ... and {len(tags) - 5} more\n"

        details += "\n🌐 Tags API:\n"
        for url in registry_urls:
            details += f"{url}/v2/{name}/tags/list\n"
        details += "\n⏎ Enter: browse tags   ⌦ Delete: remove repository"
        self.update(details.replace('[', '\\['))


class RepositoryScreen(Screen):
    """Merged repository listing across every connected registry"""

    CSS = """
    Screen {
        layout: horizontal;
    }

    .left_panel {
        width: 60%;
    }

    #repository_filter {
        border: solid $primary;
        margin: 1;
        height: 3;
    }

    #repository_list {
        border: solid $primary;
        margin: 1;
        height: 1fr;
    }

    #repository_details {
        width: 40%;
        border: solid $secondary;
        margin: 1;
        padding: 1;
    }
    """

    BINDINGS = [
        ("escape", "back", "Back"),
        ("ctrl+q", "quit", "Quit"),
        ("ctrl+d", "debug_console", "Debug Console"),
        ("ctrl+f", "focus_filter", "Focus Filter"),
        ("f5", "refresh", "Refresh"),
        ("r", "reverse_sort", "Reverse Sort"),
        ("delete", "delete_repository", "Delete Repository"),
    ]

    def __init__(self, connections: ConnectionRegistry, **kwargs):
        super().__init__(**kwargs)
        self.connections = connections
        self.manager = connections.manager
        self.filter_text = ""
        self.sort_reversed = False
        self.filtered_repository_data: List[str] = []

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal():
            with Vertical(classes="left_panel"):
                yield Input(placeholder="Filter repository names...", id="repository_filter")
                repo_table = DataTable(id="repository_list", cursor_type="row")
                repo_table.add_columns("📦", "Repository Name", "Tags")
                yield repo_table

            yield RepositoryDetailsPanel(id="repository_details")
        yield Footer()

    def on_mount(self) -> None:
        self.apply_filter()
        self.query_one("#repository_list", DataTable).focus()

    def on_screen_resume(self) -> None:
        """Tag deletes in the tags view may have changed the listing"""
        self.apply_filter(preserve_cursor=True)

    def update_title(self):
        total = len(self.manager.repositories)
        connected = len(self.connections.connected)
        if self.filter_text.strip():
            self.title = f"Repositories - {len(self.filtered_repository_data)}/{total} matching '{self.filter_text}'"
        else:
            self.title = f"Repositories - {total} across {connected} registries"

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "repository_filter":
            self.filter_text = event.value
            self.apply_filter()

    def apply_filter(self, preserve_cursor: bool = False) -> None:
        """Apply current filter to the listing and rebuild the table"""
        filter_lower = self.filter_text.strip().lower()
        repositories = sorted(self.manager.repositories, reverse=self.sort_reversed)
        self.filtered_repository_data = [name for name in repositories if filter_lower in name.lower()]

        repo_table = self.query_one("#repository_list", DataTable)
        cursor_row = repo_table.cursor_row if preserve_cursor else 0
        repo_table.clear()
        for name in self.filtered_repository_data:
            cached = self.manager.tags.get(name)
            repo_table.add_row("📦", name, str(len(cached)) if cached is not None else "?")

        if self.filtered_repository_data:
            row = min(max(cursor_row, 0), len(self.filtered_repository_data) - 1)
            repo_table.move_cursor(row=row)
            self.update_details_for_row(row)
        else:
            self.query_one("#repository_details", RepositoryDetailsPanel).update(
                "No repositories" if not self.filter_text else "No repositories match the filter"
            )
        self.update_title()

    def update_details_for_row(self, row_index: int) -> None:
        if 0 <= row_index < len(self.filtered_repository_data):
            name = self.filtered_repository_data[row_index]
            urls = [registry.url for registry in self.connections.connected]
            self.query_one("#repository_details", RepositoryDetailsPanel).update_repository_info(
                name, self.manager.tags.get(name), urls
            )

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        self.update_details_for_row(event.cursor_row)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        if 0 <= event.cursor_row < len(self.filtered_repository_data):
            self.navigate_to_tags(self.filtered_repository_data[event.cursor_row])
        event.stop()

    def navigate_to_tags(self, name: str) -> None:
        self.app.push_screen(TagsScreen(self.manager, name, resolve_registry_url=self.app.registry_url_for))

    def selected_repository(self) -> Optional[str]:
        repo_table = self.query_one("#repository_list", DataTable)
        if 0 <= repo_table.cursor_row < len(self.filtered_repository_data):
            return self.filtered_repository_data[repo_table.cursor_row]
        return None

    def action_delete_repository(self) -> None:
        name = self.selected_repository()
        if name is None:
            self.notify("No repository selected", severity="warning")
            return

        modal = ConfirmModal(
            "Delete repository",
            f"Delete every tag of {name}?\n\nTags are deleted one by one on the first registry "
            "that has the repository. Storage is reclaimed by the registry's garbage collection.",
        )

        def on_confirm(confirmed: bool) -> None:
            if confirmed:
                self.run_worker(self.delete_repository(name), exclusive=True)

        self.app.push_screen(modal, on_confirm)

    async def delete_repository(self, name: str) -> None:
        self.notify(f"🗑️ Deleting {name}...")
        try:
            result = await self.manager.delete_repository(name)
        except RegistryError as e:
            self.notify(f"❌ Failed to delete {name}: {e}", severity="error")
            return

        if result.partial:
            self.notify(f"⚠️ {name}: {result.warning}", severity="warning", timeout=6)
        else:
            self.notify(f"✅ Deleted {name} ({result.succeeded} tags)")
        self.apply_filter(preserve_cursor=True)

    async def reload_repositories(self) -> None:
        await self.manager.load_repositories()
        self.apply_filter(preserve_cursor=True)

    def action_refresh(self) -> None:
        self.notify("Refreshing repositories...")
        self.run_worker(self.reload_repositories(), exclusive=True)

    def action_reverse_sort(self) -> None:
        self.sort_reversed = not self.sort_reversed
        self.apply_filter()
        self.notify(f"Repository sort: {'descending' if self.sort_reversed else 'ascending'}")

    def action_focus_filter(self) -> None:
        self.query_one("#repository_filter", Input).focus()

    def action_debug_console(self) -> None:
        self.app.push_screen(DebugConsoleScreen(self.manager))

    def action_back(self) -> None:
        self.app.pop_screen()

    def action_quit(self) -> None:
        self.app.exit()


class RegistryListScreen(Screen):
    """Configured registries with their connection state"""

    CSS = """
    Screen {
        layout: horizontal;
    }

    #registry_list {
        width: 60%;
        border: solid $primary;
        margin: 1;
    }

    #registry_details {
        width: 40%;
        border: solid $secondary;
        margin: 1;
        padding: 1;
        layout: vertical;
    }

    #registry_details_text {
        height: 1fr;
    }

    .connect_button {
        height: 3;
        margin-top: 1;
        dock: bottom;
    }
    """

    BINDINGS = [
        ("f5", "refresh", "Refresh"),
        ("a", "add_registry", "Add Registry"),
        ("c", "toggle_connection", "Connect/Disconnect"),
        ("delete", "remove_registry", "Remove"),
        ("p", "repositories", "Repositories"),
    ]

    def __init__(self, connections: ConnectionRegistry, debug_logger: TUIDebugLogger,
                 startup_ids: Sequence[str] = (), **kwargs):
        super().__init__(**kwargs)
        self.connections = connections
        self.manager = connections.manager
        self.debug_logger = debug_logger
        self.startup_ids = list(startup_ids)

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal():
            registry_table = DataTable(id="registry_list", cursor_type="row")
            registry_table.add_columns("Status", "Registry URL", "User", "Auth", "State")
            yield registry_table

            yield RegistryDetailsPanel(id="registry_details")
        yield Footer()

    def on_mount(self) -> None:
        self.refresh_registry_table()
        self.query_one("#registry_list", DataTable).focus()
        if self.startup_ids or self.connections.auto_connect_id:
            self.run_worker(self.connect_startup_registries(self.startup_ids))

    def on_screen_resume(self) -> None:
        if self.is_mounted:
            self.refresh_registry_table()

    def refresh_registry_table(self) -> None:
        registry_table = self.query_one("#registry_list", DataTable)
        cursor_row = registry_table.cursor_row
        registry_table.clear()
        for registry in self.connections.registries:
            registry_table.add_row(
                STATE_ICONS.get(registry.state, "⚪"),
                registry.url,
                registry.username or "-",
                describe_auth(registry),
                registry.state,
            )

        registries = self.connections.registries
        if registries:
            row = min(max(cursor_row, 0), len(registries) - 1)
            registry_table.move_cursor(row=row)
            self.update_details_for_row(row)
        else:
            self.query_one("#registry_details", RegistryDetailsPanel).update_registry_info(None)

        self.title = f"Registries ({len(self.connections.connected)}/{len(registries)} connected)"

    def selected_registry(self) -> Optional[Registry]:
        registry_table = self.query_one("#registry_list", DataTable)
        registries = self.connections.registries
        if 0 <= registry_table.cursor_row < len(registries):
            return registries[registry_table.cursor_row]
        return None

    def update_details_for_row(self, row_index: int) -> None:
        registries = self.connections.registries
        if 0 <= row_index < len(registries):
            self.query_one("#registry_details", RegistryDetailsPanel).update_registry_info(
                registries[row_index], len(self.manager.repositories)
            )

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        self.update_details_for_row(event.cursor_row)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        """Enter on a registry opens the merged repository listing"""
        self.action_repositories()
        event.stop()

    async def connect_registry(self, registry_id: str) -> bool:
        registry = self.connections.get(registry_id)
        if registry is None:
            return False
        # Shown as connecting until ConnectionRegistry.connect settles
        registry.loading = True
        self.refresh_registry_table()
        connected = await self.connections.connect(registry_id)
        if connected:
            self.notify(f"🟢 Connected to {registry.url} ({len(self.manager.repositories)} repositories total)")
        else:
            self.notify(f"❌ Could not connect to {registry.url}", severity="error")
        self.refresh_registry_table()
        return connected

    async def connect_startup_registries(self, startup_ids: Sequence[str]) -> None:
        """Connect --registry entries and the environment default"""
        for registry_id in startup_ids:
            await self.connect_registry(registry_id)
        auto_id = self.connections.auto_connect_id
        if auto_id:
            self.debug_logger.debug("Auto-connecting environment default", registry_id=auto_id)
            registry = self.connections.get(auto_id)
            if await self.connections.auto_connect():
                self.notify(f"🟢 Connected to {registry.url}")
            else:
                self.notify(f"❌ Could not connect to {registry.url}", severity="error")
            self.refresh_registry_table()

    async def disconnect_registry(self, registry_id: str) -> None:
        await self.connections.disconnect(registry_id)
        registry = self.connections.get(registry_id)
        if registry:
            self.notify(f"⚪ Disconnected from {registry.url}")
        self.refresh_registry_table()

    def action_toggle_connection(self) -> None:
        registry = self.selected_registry()
        if registry is None:
            self.notify("No registry selected", severity="warning")
            return
        if registry.loading:
            return
        if registry.connected:
            self.run_worker(self.disconnect_registry(registry.id))
        else:
            self.run_worker(self.connect_registry(registry.id))

    def action_add_registry(self) -> None:
        def on_saved(values: Optional[dict]) -> None:
            if not values:
                return
            if self.connections.find_by_url(values["url"]):
                self.notify(f"{values['url']} is already configured", severity="warning")
                return
            registry = self.connections.add(values["url"], values["username"], values["password"])
            self.debug_logger.debug("Registry added from form", url=registry.url,
                                    has_credentials=registry.config.has_credentials)
            self.refresh_registry_table()
            self.query_one("#registry_list", DataTable).move_cursor(row=len(self.connections.registries) - 1)
            self.run_worker(self.connect_registry(registry.id))

        self.app.push_screen(RegistryConfigModal(self.connections.client_factory), on_saved)

    def action_remove_registry(self) -> None:
        registry = self.selected_registry()
        if registry is None:
            self.notify("No registry selected", severity="warning")
            return

        def on_confirm(confirmed: bool) -> None:
            if confirmed:
                self.run_worker(self.remove_registry(registry.id, registry.url))

        self.app.push_screen(
            ConfirmModal("Remove registry", f"Remove {registry.url} from Wharf?\n\nNothing is deleted on the registry.",
                         confirm_label="Remove"),
            on_confirm,
        )

    async def remove_registry(self, registry_id: str, url: str) -> None:
        await self.connections.remove(registry_id)
        self.notify(f"Removed {url}")
        self.refresh_registry_table()

    def action_repositories(self) -> None:
        if not self.connections.connected:
            self.notify("Connect a registry first", severity="warning")
            return
        self.app.push_screen(RepositoryScreen(self.connections))

    async def reload_repositories(self) -> None:
        await self.manager.load_repositories()
        self.refresh_registry_table()
        self.notify(f"📦 {len(self.manager.repositories)} repositories across {len(self.connections.connected)} registries")

    def action_refresh(self) -> None:
        self.notify("Refreshing repositories...")
        self.run_worker(self.reload_repositories(), exclusive=True)


class WharfApp(App):
    """Main TUI application for managing container registries"""

    TITLE = "Wharf - Container Registry Dashboard"

    BINDINGS = [
        ("ctrl+q", "quit", "Quit"),
        ("ctrl+d", "debug_console", "Debug Console"),
        ("i", "info", "Info"),
    ]

    def __init__(self, connections: ConnectionRegistry, startup_ids: Sequence[str] = (),
                 debug_logger: Optional[TUIDebugLogger] = None, mock_mode: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.connections = connections
        self.manager = connections.manager
        self.startup_ids = list(startup_ids)
        self.debug_logger = debug_logger or TUIDebugLogger(enabled=False)
        self.mock_mode = mock_mode
        self.registry_screen: Optional[RegistryListScreen] = None

    def on_mount(self) -> None:
        if self.mock_mode:
            self.sub_title = "Mock registries"
        self.registry_screen = RegistryListScreen(self.connections, self.debug_logger, startup_ids=self.startup_ids)
        self.push_screen(self.registry_screen)

    async def on_unmount(self) -> None:
        await self.connections.close()

    def registry_url_for(self, registry_id: Optional[str]) -> Optional[str]:
        registry = self.connections.get(registry_id)
        return registry.url if registry else None

    def action_debug_console(self) -> None:
        if not isinstance(self.screen, DebugConsoleScreen):
            self.push_screen(DebugConsoleScreen(self.manager))

    def action_info(self) -> None:
        config_manager = self.connections.config_manager
        self.push_screen(InfoModal(
            config_info=config_manager.get_config_info() if config_manager else None,
            mock_mode=self.mock_mode,
            connected_count=len(self.connections.connected),
        ))

    def action_quit(self) -> None:
        self.debug_logger.debug("Application quit requested")
        self.exit()


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description="Wharf - TUI dashboard for Docker/OCI container registries")

    parser.add_argument(
        "--registry",
        action="append",
        dest="registries",
        default=[],
        help="Registry URL to connect for this session (can be specified multiple times)"
    )
    parser.add_argument("--username", help="Username for --registry entries")
    parser.add_argument("--password", help="Password or token for --registry entries")

    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use in-memory demo registries instead of the network"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Per-request timeout in seconds (default: from config, 30)"
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Disable TLS certificate verification"
    )
    parser.add_argument(
        "--config-dir",
        help="Directory holding config.json (default: platform config directory)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to a file"
    )
    parser.add_argument(
        "--verbose-debug",
        action="store_true",
        help="Enable verbose debug logging including HTTP libraries (httpcore, httpx)"
    )
    parser.add_argument(
        "--debug-location",
        type=str,
        default=DEFAULT_DEBUG_FILE,
        help=f"File path for debug logging (default: {DEFAULT_DEBUG_FILE})"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Wharf {APP_VERSION}"
    )

    return parser.parse_args(argv)


def build_app(args: argparse.Namespace, debug_logger: TUIDebugLogger) -> WharfApp:
    """Wire the manager, connection registry and client factory for the chosen mode"""
    if args.mock:
        mocks = build_demo_registries()
        manager = RegistryManager(tui_debug_logger=debug_logger)
        factory = mock_client_factory(mocks, tui_debug_logger=debug_logger, on_api_call=manager.add_api_call)
        connections = ConnectionRegistry(manager, config_manager=None, client_factory=factory)
        startup_ids = [connections.add(mock.url, mock.username, mock.password, persist=False).id for mock in mocks]
        debug_logger.debug("Using demo registries", count=len(mocks))
        return WharfApp(connections, startup_ids=startup_ids, debug_logger=debug_logger, mock_mode=True)

    config_manager = ConfigManager(config_dir=args.config_dir)
    settings = config_manager.get_app_settings()
    timeout = args.timeout or settings["request_timeout"]
    verify = settings["verify_tls"] and not args.insecure

    manager = RegistryManager(page_size=settings["default_page_size"] or None, tui_debug_logger=debug_logger)

    def client_factory(config: RegistryConfig) -> RegistryClient:
        return RegistryClient.from_config(
            config, timeout=timeout, verify=verify, tui_debug_logger=debug_logger, on_api_call=manager.add_api_call
        )

    connections = ConnectionRegistry(manager, config_manager=config_manager, client_factory=client_factory)
    connections.load()

    startup_ids = []
    for url in args.registries:
        registry = connections.find_by_url(url)
        if registry is None:
            registry = connections.add(url, args.username, args.password, persist=False)
        startup_ids.append(registry.id)

    debug_logger.debug("Configuration loaded", registries=len(connections.registries), timeout=timeout,
                       verify_tls=verify, cli_registries=len(startup_ids))
    return WharfApp(connections, startup_ids=startup_ids, debug_logger=debug_logger)


def main(argv: Optional[Sequence[str]] = None):
    """Main entry point"""
    args = parse_arguments(argv)

    debug_enabled = args.debug or args.verbose_debug
    debug_logger = TUIDebugLogger(enabled=debug_enabled, verbose=args.verbose_debug, debug_file_path=args.debug_location)
    if not debug_enabled:
        # Keep stray warnings off the terminal the TUI is drawing on
        logging.getLogger().addHandler(logging.NullHandler())

    debug_logger.debug("Starting Wharf", debug_enabled=debug_enabled, verbose_debug=args.verbose_debug, mock_mode=args.mock)

    app = build_app(args, debug_logger)
    try:
        app.run()
    finally:
        debug_logger.close()


if __name__ == "__main__":
    main()
