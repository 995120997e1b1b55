import logging
from typing import List, Tuple

from rich.markup import escape
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Footer, Header, Label, LoadingIndicator, Markdown, Tree

from bomgraph.__version__ import __version__
from bomgraph.core.bom import BOM, Component
from bomgraph.generators import Generator, run_generators


class ComponentScreen(ModalScreen):
    """Modal showing a component's identifier and provenance."""

    DEFAULT_CSS = """
    ComponentScreen {
        align: center middle;
        background: rgba(0, 0, 0, 0.8);
    }
    #dialog {
        padding: 0 1;
        width: 85%;
        height: 85%;
        border: heavy $primary;
        background: $surface;
        layout: vertical;
    }
    #title {
        text-align: center;
        text-style: bold;
        background: $primary;
        color: white;
        width: 100%;
        padding: 1;
    }
    #content-scroll {
        height: 1fr;
        margin: 1 0;
        overflow-y: auto;
    }
    #close-btn {
        width: 100%;
        dock: bottom;
    }
    """

    def __init__(self, component: Component) -> None:
        super().__init__()
        self.component = component

    def compose(self) -> ComposeResult:
        title = self.component.name
        if self.component.version:
            title = f"{title} {self.component.version}"
        yield Vertical(
            Label(escape(title), id="title"),
            VerticalScroll(Markdown(self._build_report()), id="content-scroll"),
            Button("Close (Esc)", variant="primary", id="close-btn"),
            id="dialog",
        )

    def _build_report(self) -> str:
        c = self.component
        md_output = []
        if c.group:
            md_output.append(f"**Group:** {c.group}\n")
        if c.purl:
            md_output.append(f"**Package URL:** `{c.purl}`\n")
        md_output.append("```")
        md_output.append(c.description.expandtabs(4).rstrip() or "No description.")
        md_output.append("```")
        if c.components:
            md_output.append("\n### Subcomponents\n")
            for sub in c.components:
                md_output.append(f"- `{sub.purl or sub.name}`")
        return "\n".join(md_output)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss()

    def key_escape(self) -> None:
        self.dismiss()


class BomApp(App):
    TITLE = "bomgraph"
    SUB_TITLE = f"v{__version__}"

    DEFAULT_CSS = """
    Screen { layout: vertical; }

    #info-bar {
        height: 3;
        dock: top;
        background: $surface;
        border-bottom: solid $primary;
        align: left middle;
        padding: 0 1;
    }

    .info-label {
        width: auto;
        height: 1;
        padding: 0 2;
    }

    #tree-container { height: 1fr; margin: 0 1; }
    Tree { padding: 1; background: $surface; }

    #loading-container { height: 100%; align: center middle; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
        Binding("l", "expand_node", "Expand"),
        Binding("h", "collapse_node", "Collapse"),
        Binding("r", "rescan", "Rescan"),
    ]

    def __init__(self, path: str, generators: List[Generator]) -> None:
        super().__init__()
        self.path = path
        self.generators = generators

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        with Horizontal(id="info-bar"):
            yield Label(f"[b]Path:[/b] [cyan]{escape(self.path)}[/]", classes="info-label")
            yield Label("[b]Components:[/b] [blue]0[/]", id="lbl-total", classes="info-label")
            yield Label("[b]Errors:[/b] [red]0[/]", id="lbl-errors", classes="info-label")

        with Container(id="main-area"):
            with Container(id="loading-container"):
                yield LoadingIndicator()
                yield Label("Starting...", id="status-label")

            with Container(id="tree-container"):
                yield Tree("Root", id="bom-tree")

        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#tree-container").display = False
        self.generate()

    def action_cursor_down(self) -> None:
        self.query_one("#bom-tree").action_cursor_down()

    def action_cursor_up(self) -> None:
        self.query_one("#bom-tree").action_cursor_up()

    def action_expand_node(self) -> None:
        tree = self.query_one("#bom-tree")
        if tree.cursor_node:
            tree.cursor_node.expand()

    def action_collapse_node(self) -> None:
        tree = self.query_one("#bom-tree")
        node = tree.cursor_node
        if node:
            if node.is_expanded:
                node.collapse()
            elif node.parent:
                tree.select_node(node.parent)
                node.parent.collapse()

    def action_rescan(self) -> None:
        self.query_one("#tree-container").display = False
        self.query_one("#loading-container").display = True
        self.generate()

    def on_tree_node_selected(self, event: Tree.NodeSelected) -> None:
        if isinstance(event.node.data, Component):
            self.push_screen(ComponentScreen(event.node.data))

    def update_status(self, msg: str) -> None:
        self.query_one("#status-label", Label).update(msg)

    def show_error(self, message: str) -> None:
        self.query_one("#status-label", Label).update(f"[bold red]Fatal Error:[/]\n{escape(message)}")
        self.query_one(LoadingIndicator).display = False

    @work(thread=True, exclusive=True)
    def generate(self) -> None:
        try:
            logging.info(f"Generating BOMs for '{self.path}'")
            self.call_from_thread(self.update_status, "Reading manifests...")
            results, errors = run_generators(self.generators, self.path)
            if not results and errors:
                message = "\n".join(f"{name}: {err}" for name, err in errors.items())
                self.call_from_thread(self.show_error, message)
                return
            self.call_from_thread(self.render_tree, results, len(errors))
        except Exception as e:
            logging.exception("Fatal error in worker:")
            self.call_from_thread(self.show_error, str(e))

    def render_tree(self, results: List[Tuple[str, BOM]], error_count: int) -> None:
        tree = self.query_one("#bom-tree", Tree)
        tree.clear()
        tree.root.label = f"📂 {escape(self.path)}"
        tree.root.expand()

        total = 0
        for name, bom in results:
            branch = tree.root.add(f"[b]{escape(name)}[/] [dim]({len(bom.components)})[/]", expand=True)
            for component in bom.components:
                self._add_component(branch, component)
            total += len(bom.components)

        self.query_one("#lbl-total", Label).update(f"[b]Components:[/b] [blue]{total}[/]")
        self.query_one("#lbl-errors", Label).update(f"[b]Errors:[/b] [red]{error_count}[/]")
        self.query_one("#loading-container").display = False
        self.query_one("#tree-container").display = True
        tree.focus()

    def _add_component(self, branch, component: Component) -> None:
        safe_name = escape(component.name)
        if not component.purl:
            # build configurations carry no package URL
            label = f"[blue](-) {safe_name}[/]"
        else:
            label = f"[green](•) {safe_name}[/] {escape(component.version)} [dim]{escape(component.purl)}[/]"

        if component.components:
            node = branch.add(f"{label} [dim]↳[/] {len(component.components)}", data=component)
            for sub in component.components:
                self._add_component(node, sub)
        else:
            branch.add_leaf(label, data=component)
