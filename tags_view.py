"""
Tags View Screen

Tags of one repository, looked up across the connected registries. Enter
opens the manifest, Delete removes the tag after confirmation.
"""

from typing import Callable, List, Optional

from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.widgets import DataTable, Static, Header, Footer
from textual.screen import Screen

from confirm_modal import ConfirmModal
from debug_console import DebugConsoleScreen
from manifest_modal import ManifestModal, pull_reference
from registry_errors import RegistryError
from registry_manager import RegistryManager


class TagDetailsPanel(Static):
    """Right panel showing detailed tag information"""

    def update_tag_info(self, repository: str, tag: Optional[str], registry_url: Optional[str]):
        if not tag:
            self.update("Select a tag to view details")
            return

        reference = pull_reference(registry_url, repository, tag)
        details = f"""🏷️ Tag: {tag}
📦 Repository: {repository}
🏢 Registry: {registry_url or 'Unknown'}"""
        if registry_url:
            details += f"\n🌐 Manifest API: {registry_url}/v2/{repository}/manifests/{tag}"
        details += f"""

📥 Pull Command:
podman image pull {reference}

🔧 Alternative Commands:
docker pull {reference}
skopeo inspect docker://{reference}

⏎ Enter: manifest details   ⌦ Delete: remove tag"""
        self.update(details.replace('[', '\\['))


class TagsScreen(Screen):
    """Screen for browsing tags within a selected repository"""

    CSS = """
    Screen {
        layout: horizontal;
    }

    #tags_list {
        width: 60%;
        border: solid $primary;
        margin: 1;
    }

    #tag_details {
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
        ("ctrl+d", "debug_console", "Debug Console"),
        ("f5", "refresh", "Refresh"),
        ("r", "reverse_sort", "Reverse Sort"),
        ("delete", "delete_tag", "Delete Tag"),
    ]

    def __init__(self, manager: RegistryManager, repository: str,
                 resolve_registry_url: Optional[Callable[[str], Optional[str]]] = None, **kwargs):
        super().__init__(**kwargs)
        self.manager = manager
        self.repository = repository
        self.resolve_registry_url = resolve_registry_url or (lambda registry_id: None)
        self.tag_data: List[str] = []
        self.registry_url: Optional[str] = None
        self.sort_reversed = False

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal():
            tags_table = DataTable(id="tags_list", cursor_type="row")
            tags_table.add_columns("🏷️", "Tag", "Repository", "Pull Reference")
            yield tags_table

            yield TagDetailsPanel(id="tag_details")
        yield Footer()

    def on_mount(self) -> None:
        self.update_title(loading=True)
        self.query_one("#tag_details", TagDetailsPanel).update("Loading tags...")
        self.run_worker(self.load_tags(), exclusive=True)

    def update_title(self, loading: bool = False):
        if loading:
            self.title = f"Tags - {self.repository} (loading...)"
        else:
            self.title = f"Tags - {self.repository} ({len(self.tag_data)} total)"

    async def load_tags(self) -> None:
        """Background task to look the repository up across registries"""
        try:
            tags_list = await self.manager.get_tags(self.repository)
        except RegistryError as e:
            self.tag_data = []
            self.rebuild_table()
            self.update_title()
            self.query_one("#tag_details", TagDetailsPanel).update(f"❌ {e}")
            self.notify(f"❌ Error loading tags: {e}", severity="error")
            return

        self.registry_url = self.resolve_registry_url(self.manager.sources.get(self.repository))
        self.tag_data = sorted(tags_list.tags, reverse=self.sort_reversed)
        self.rebuild_table()
        self.update_title()

    def rebuild_table(self, cursor_row: int = 0) -> None:
        tags_table = self.query_one("#tags_list", DataTable)
        tags_table.clear()
        for tag in self.tag_data:
            tags_table.add_row("Tag", tag, self.repository, pull_reference(self.registry_url, self.repository, tag))

        if self.tag_data:
            row = min(cursor_row, len(self.tag_data) - 1)
            tags_table.move_cursor(row=row)
            self.update_details_for_row(row)
            tags_table.focus()
        else:
            self.query_one("#tag_details", TagDetailsPanel).update("No tags in this repository")

    def selected_row(self) -> Optional[int]:
        tags_table = self.query_one("#tags_list", DataTable)
        if self.tag_data and 0 <= tags_table.cursor_row < len(self.tag_data):
            return tags_table.cursor_row
        return None

    def update_details_for_row(self, row_index: int) -> None:
        details_panel = self.query_one("#tag_details", TagDetailsPanel)
        if 0 <= row_index < len(self.tag_data):
            details_panel.update_tag_info(self.repository, self.tag_data[row_index], self.registry_url)

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        self.update_details_for_row(event.cursor_row)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        """Enter or click opens the manifest"""
        if 0 <= event.cursor_row < len(self.tag_data):
            self.show_manifest_modal(event.cursor_row)
        event.stop()

    def show_manifest_modal(self, row_index: int) -> None:
        modal = ManifestModal(
            self.manager,
            self.repository,
            list(self.tag_data),
            current_index=row_index,
            registry_url=self.registry_url,
        )

        def sync_cursor(index: Optional[int]) -> None:
            if index is not None and index < len(self.tag_data):
                self.query_one("#tags_list", DataTable).move_cursor(row=index)

        self.app.push_screen(modal, sync_cursor)

    def action_delete_tag(self) -> None:
        row = self.selected_row()
        if row is None:
            self.notify("No tag selected", severity="warning")
            return

        tag = self.tag_data[row]
        modal = ConfirmModal(
            "Delete tag",
            f"Delete {self.repository}:{tag}?\n\nThe manifest is deleted by digest, so every tag "
            "pointing at the same digest disappears too.",
        )

        def on_confirm(confirmed: bool) -> None:
            if confirmed:
                self.run_worker(self.delete_tag(tag, row), exclusive=True)

        self.app.push_screen(modal, on_confirm)

    async def delete_tag(self, tag: str, row: int) -> None:
        try:
            remaining = await self.manager.delete_tag(self.repository, tag)
        except RegistryError as e:
            self.notify(f"❌ Failed to delete {tag}: {e}", severity="error")
            return

        self.notify(f"🗑️ Deleted {self.repository}:{tag}")
        if not remaining:
            self.notify(f"📦 {self.repository} has no tags left", timeout=3)
            self.app.pop_screen()
            return

        self.tag_data = sorted(remaining, reverse=self.sort_reversed)
        self.rebuild_table(cursor_row=row)
        self.update_title()

    def action_debug_console(self) -> None:
        self.app.push_screen(DebugConsoleScreen(self.manager))

    def action_reverse_sort(self) -> None:
        self.sort_reversed = not self.sort_reversed
        self.tag_data.reverse()
        self.rebuild_table()
        self.notify(f"Tag sort: {'descending' if self.sort_reversed else 'ascending'}")

    def action_back(self) -> None:
        self.app.pop_screen()

    def action_refresh(self) -> None:
        self.notify("Refreshing tags...")
        self.update_title(loading=True)
        self.run_worker(self.load_tags(), exclusive=True)

    def action_quit(self) -> None:
        self.app.exit()
