"""
Manifest Modal

Shows the manifest behind a tag: kind, digest, config blob and either the
layers of a single-platform image or the per-platform entries of an index.
"""

from typing import List, Optional

from textual.app import ComposeResult
from textual.containers import Vertical, Horizontal, ScrollableContainer
from textual.widgets import Static, Button, DataTable
from textual.screen import ModalScreen

from registry_errors import RegistryError
from registry_manager import RegistryManager
from registry_models import Manifest, format_bytes


def registry_host(registry_url: str) -> str:
    """Host part used in pull references"""
    return registry_url.split("://", 1)[-1].rstrip("/")


def pull_reference(registry_url: Optional[str], repository: str, tag: str) -> str:
    if not registry_url:
        return f"{repository}:{tag}"
    return f"{registry_host(registry_url)}/{repository}:{tag}"


def short_media_type(media_type: str) -> str:
    if "rootfs.diff.tar.gzip" in media_type or "tar+gzip" in media_type:
        return "gzip"
    if "tar+zstd" in media_type:
        return "zstd"
    if "rootfs.diff.tar" in media_type or media_type.endswith(".tar"):
        return "tar"
    if "manifest" in media_type:
        return "manifest"
    return media_type.split(".")[-1] if "." in media_type else (media_type or "unknown")


class ManifestModal(ModalScreen):
    """Modal screen for displaying the manifest of one tag"""

    CSS = """
    ManifestModal {
        align: center middle;
    }

    #modal_container {
        width: 90%;
        height: 85%;
        border: solid $primary;
        background: $surface;
        layout: vertical;
    }

    #content_container {
        height: 1fr;
        padding: 1;
        layout: horizontal;
    }

    #left_pane {
        width: 45%;
        margin-right: 1;
        layout: vertical;
    }

    #right_pane {
        width: 55%;
        layout: vertical;
    }

    .pane_title {
        height: 1;
        text-align: center;
        background: $boost;
        color: $text;
    }

    .pane_content {
        height: 1fr;
        padding: 1;
        border: solid $accent;
        overflow-y: auto;
    }

    #layers_table {
        height: 18;
        margin: 1 0;
    }

    #button_container {
        height: 3;
        dock: bottom;
        align: center middle;
    }

    Button {
        margin: 0 1;
    }
    """

    BINDINGS = [
        ("escape", "close", "Close"),
        ("ctrl+q", "quit", "Quit"),
        ("c", "copy_digest", "Copy Digest"),
        ("pageup", "previous_tag", "Previous Tag"),
        ("pagedown", "next_tag", "Next Tag"),
    ]

    def __init__(self, manager: RegistryManager, repository: str, tags: List[str], current_index: int = 0,
                 registry_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.manager = manager
        self.repository = repository
        self.tags = tags
        self.current_index = current_index
        self.registry_url = registry_url
        self.manifest: Optional[Manifest] = None
        self.digest: Optional[str] = None

    @property
    def tag(self) -> str:
        return self.tags[self.current_index]

    def compose(self) -> ComposeResult:
        with Vertical(id="modal_container"):
            with Horizontal(id="content_container"):
                with Vertical(id="left_pane"):
                    yield Static("TAG", classes="pane_title")
                    with ScrollableContainer(classes="pane_content"):
                        yield Static(self._format_tag_details(), id="tag_content")

                with Vertical(id="right_pane"):
                    yield Static("MANIFEST", classes="pane_title")
                    with ScrollableContainer(classes="pane_content"):
                        yield Static("Loading manifest...", id="manifest_content")
                        layers_table = DataTable(id="layers_table", cursor_type="row")
                        layers_table.add_columns("Entry", "Media Type", "Digest", "Size")
                        yield layers_table

            with Horizontal(id="button_container"):
                yield Button("Copy Digest", id="copy_btn", variant="default")
                yield Button("Close", id="close_btn", variant="primary")

    def on_mount(self) -> None:
        self.load_manifest()

    def update_title(self) -> None:
        if len(self.tags) > 1:
            self.title = f"Manifest - {self.repository}:{self.tag} ({self.current_index + 1}/{len(self.tags)})"
        else:
            self.title = f"Manifest - {self.repository}:{self.tag}"

    def load_manifest(self) -> None:
        self.manifest = None
        self.digest = None
        self.update_title()
        self.query_one("#tag_content", Static).update(self._format_tag_details())
        self.query_one("#manifest_content", Static).update("Loading manifest...")
        self.query_one("#layers_table", DataTable).clear()
        self.run_worker(self.fetch_manifest(self.tag), exclusive=True)

    async def fetch_manifest(self, tag: str) -> None:
        """Background task to fetch the manifest and its digest"""
        try:
            resolved = await self.manager.resolve_manifest(self.repository, tag)
        except RegistryError as e:
            self.query_one("#manifest_content", Static).update(f"❌ Could not load manifest:\n{e}")
            return

        if resolved.digest_error:
            self.notify(f"⚠️ Digest unavailable: {resolved.digest_error}", severity="warning")

        if tag != self.tag:
            return
        self.manifest = resolved.manifest
        self.digest = resolved.digest
        self.query_one("#tag_content", Static).update(self._format_tag_details())
        self.query_one("#manifest_content", Static).update(self._format_manifest())
        self.populate_layers_table()

    def _format_tag_details(self) -> str:
        reference = pull_reference(self.registry_url, self.repository, self.tag)
        lines = [
            f"Tag: {self.tag}",
            f"Repository: {self.repository}",
            f"Registry: {self.registry_url or 'Unknown'}",
            "",
            "Manifest Digest:",
            self.digest or "Resolving...",
            "",
            "Pull Commands:",
            f"podman image pull {reference}",
            f"docker pull {reference}",
        ]
        if self.digest:
            lines.append(f"docker pull {reference.rsplit(':', 1)[0]}@{self.digest}")
        if self.registry_url:
            lines.extend([
                "",
                "Manifest API:",
                f"{self.registry_url}/v2/{self.repository}/manifests/{self.tag}",
            ])
        return "\n".join(lines).replace('[', '\\[')

    def _format_manifest(self) -> str:
        manifest = self.manifest
        lines = [
            f"Kind: {manifest.kind}",
            f"Schema Version: {manifest.schema_version}",
            f"Media Type: {manifest.media_type or 'Unknown'}",
        ]
        if manifest.is_index:
            lines.append(f"Platforms: {len(manifest.manifests)}")
        else:
            if manifest.config:
                lines.extend([
                    f"Config Digest: {manifest.config.digest}",
                    f"Config Size: {format_bytes(manifest.config.size)}",
                ])
            lines.extend([
                f"Layer Count: {len(manifest.layers)}",
                f"Total Size: {format_bytes(manifest.total_size)}",
            ])
            if manifest.schema_version == 1:
                lines.append("Layer sizes are not recorded in schema 1 manifests")
        return "\n".join(lines).replace('[', '\\[')

    def populate_layers_table(self) -> None:
        layers_table = self.query_one("#layers_table", DataTable)
        layers_table.clear()
        if not self.manifest:
            return

        if self.manifest.is_index:
            for entry in self.manifest.manifests:
                layers_table.add_row(
                    str(entry.platform) if entry.platform else "unknown",
                    short_media_type(entry.media_type),
                    entry.digest,
                    format_bytes(entry.size),
                )
            return

        if self.manifest.config:
            config = self.manifest.config
            layers_table.add_row("Config", short_media_type(config.media_type), config.digest, format_bytes(config.size))
        for i, layer in enumerate(self.manifest.layers, 1):
            layers_table.add_row(f"Layer {i}", short_media_type(layer.media_type), layer.digest, format_bytes(layer.size))

    def action_copy_digest(self) -> None:
        if not self.digest:
            self.notify("No digest available to copy", severity="warning")
            return
        self.app.copy_to_clipboard(self.digest)
        self.notify(f"Digest copied: {self.digest[:19]}...")

    def action_previous_tag(self) -> None:
        if self.current_index > 0:
            self.current_index -= 1
            self.load_manifest()

    def action_next_tag(self) -> None:
        if self.current_index < len(self.tags) - 1:
            self.current_index += 1
            self.load_manifest()

    def action_close(self) -> None:
        self.dismiss(self.current_index)

    def action_quit(self) -> None:
        self.app.exit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "close_btn":
            self.action_close()
        elif event.button.id == "copy_btn":
            self.action_copy_digest()
