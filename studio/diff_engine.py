"""
Studio Diff Engine

Line-based comparison of two versions of the editor's code or styles:
╭─ Changes to code (+1 -0 ~1) ────────────────╮
│   2 │ ~ old line → new line                 │
│   3 │ + added line                          │
╰─────────────────────────────────────────────╯

The walk is a greedy single-lookahead heuristic, not a minimal edit
script: a run of two or more inserted or deleted lines can come out as a
sequence of modifications. It is linear in the number of lines.
"""

from typing import Optional, List
from dataclasses import dataclass, field

from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich.markup import escape
from rich.box import ROUNDED


@dataclass(frozen=True)
class LineChange:
    """An added or deleted line (1-based line number)"""
    line: int
    content: str


@dataclass(frozen=True)
class LineModification:
    """A line whose content changed in place"""
    line: int
    old_content: str
    new_content: str


@dataclass
class DiffStats:
    """Statistics for a diff"""
    additions: int = 0
    deletions: int = 0
    modifications: int = 0

    @property
    def changes(self) -> int:
        return self.additions + self.deletions + self.modifications


@dataclass
class DiffResult:
    """Classified line changes between two texts"""
    additions: List[LineChange] = field(default_factory=list)
    deletions: List[LineChange] = field(default_factory=list)
    modifications: List[LineModification] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.additions or self.deletions or self.modifications)

    @property
    def stats(self) -> DiffStats:
        return DiffStats(
            additions=len(self.additions),
            deletions=len(self.deletions),
            modifications=len(self.modifications)
        )


def compute_diff(old_text: Optional[str], new_text: Optional[str]) -> DiffResult:
    """
    Compare two texts line by line.

    Line numbers of additions refer to the new text, those of deletions
    and modifications to the old text. Missing input yields an empty
    result rather than an error.
    """
    result = DiffResult()
    if not isinstance(old_text, str) or not isinstance(new_text, str):
        return result

    old_lines = old_text.split("\n")
    new_lines = new_text.split("\n")

    old_index = 0
    new_index = 0

    while old_index < len(old_lines) or new_index < len(new_lines):
        if old_index >= len(old_lines):
            result.additions.append(LineChange(new_index + 1, new_lines[new_index]))
            new_index += 1
            continue

        if new_index >= len(new_lines):
            result.deletions.append(LineChange(old_index + 1, old_lines[old_index]))
            old_index += 1
            continue

        old_line = old_lines[old_index]
        new_line = new_lines[new_index]

        if old_line == new_line:
            old_index += 1
            new_index += 1
            continue

        next_old = old_lines[old_index + 1] if old_index + 1 < len(old_lines) else None
        next_new = new_lines[new_index + 1] if new_index + 1 < len(new_lines) else None

        if next_old is not None and next_old == new_line:
            result.deletions.append(LineChange(old_index + 1, old_line))
            old_index += 1
        elif next_new is not None and next_new == old_line:
            result.additions.append(LineChange(new_index + 1, new_line))
            new_index += 1
        else:
            result.modifications.append(LineModification(old_index + 1, old_line, new_line))
            old_index += 1
            new_index += 1

    return result


class DiffRenderer:
    """
    Renders diff results for the terminal.

    Usage:
        renderer = DiffRenderer(console)
        renderer.show(compute_diff(old_code, new_code), "code")
    """

    def __init__(self, console: Console):
        self.console = console

    def show(self, result: DiffResult, label: str = "code", show_line_numbers: bool = True):
        """Print every change ordered by line number"""
        if result.is_empty:
            self.console.print(f"[dim]No changes in {label}[/dim]")
            return

        rows = []
        for change in result.deletions:
            rows.append((change.line, 0, f"[red]{self._num(change.line, show_line_numbers)} │ - {escape(change.content)}[/red]"))
        for change in result.modifications:
            rows.append((change.line, 1,
                         f"[yellow]{self._num(change.line, show_line_numbers)} │ ~ "
                         f"{escape(change.old_content)} → {escape(change.new_content)}[/yellow]"))
        for change in result.additions:
            rows.append((change.line, 2, f"[green]{self._num(change.line, show_line_numbers)} │ + {escape(change.content)}[/green]"))

        rows.sort(key=lambda row: (row[0], row[1]))
        content = "\n".join(row[2] for row in rows)

        stats = result.stats
        stats_text = (
            f"[green]+{stats.additions}[/green] [red]-{stats.deletions}[/red] "
            f"[yellow]~{stats.modifications}[/yellow]"
        )

        self.console.print(Panel(
            Text.from_markup(content),
            title=f"Changes to [cyan]{escape(label)}[/cyan] ({stats_text})",
            border_style="yellow",
            box=ROUNDED,
            padding=(0, 1)
        ))

    @staticmethod
    def _num(line: int, show: bool) -> str:
        return f"{line:4}" if show else "    "
