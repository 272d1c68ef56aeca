"""Console rendering for identity lines, field changes, diffs, and summaries.

Respects the ``NO_COLOR`` environment variable and the ``--no-color`` flag.
Record content is always printed with markup disabled so brackets in field
values are never interpreted as rich styles.
"""

from __future__ import annotations

import os
from typing import IO, TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from collections.abc import Sequence


def _color_allowed(no_color_flag: bool) -> bool:
    if no_color_flag:
        return False
    return not os.environ.get("NO_COLOR", "")


class CLIRenderer:
    """Thin wrapper over a rich ``Console`` with the output shapes the tool needs."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        file: IO[str] | None = None,
    ) -> None:
        self.verbose = verbose
        self._color = _color_allowed(no_color)
        self.console = Console(
            file=file,
            no_color=not self._color,
            highlight=False,
            soft_wrap=True,
        )

    def heading(self, text: str) -> None:
        self.console.print(text, style="bold", markup=False)

    def kv(self, key: str, value: object) -> None:
        self.console.print(f"{key}: {value}", markup=False)

    def text(self, line: str) -> None:
        self.console.print(line, markup=False)

    def blank(self) -> None:
        self.console.print()

    def warning(self, text: str) -> None:
        self.console.print(f"  Warning: {text}", style="yellow", markup=False)

    def error(self, text: str) -> None:
        self.console.print(f"  Error: {text}", style="red", markup=False)

    def identity(self, display: str) -> None:
        """Print the per-record identity line."""

        self.console.print(display, style="cyan", markup=False)

    def diff(self, lines: Sequence[str]) -> None:
        """Print unified-diff lines, colouring additions and removals."""

        for line in lines:
            if line.startswith(("+++", "---")):
                style = "bold"
            elif line.startswith("@@"):
                style = "magenta"
            elif line.startswith("+"):
                style = "green"
            elif line.startswith("-"):
                style = "red"
            else:
                style = None
            self.console.print(line, style=style, markup=False)

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        if not rows:
            return
        table = Table(title=title, show_edge=False, header_style="bold")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*(str(cell) for cell in row))
        self.console.print(table)

    def ok(self, label: str) -> None:
        self.console.print(f"  OK  {label}", style="green", markup=False)

    def fail(self, label: str) -> None:
        self.console.print(f"  FAIL  {label}", style="red", markup=False)


def create_renderer(
    *,
    no_color: bool = False,
    verbose: bool = False,
    file: IO[str] | None = None,
) -> CLIRenderer:
    """Renderer for one command; ``file`` defaults to stdout."""

    return CLIRenderer(no_color=no_color, verbose=verbose, file=file)


__all__ = ["CLIRenderer", "create_renderer"]
