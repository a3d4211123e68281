"""Terminal front-end for the worker."""

from __future__ import annotations

import time
from typing import Sequence

from rich.align import Align
from rich.console import Console, RenderableType
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from .console import set_console_utf8

TITLE = " YLine Worker "
LOG_TITLE = " 日志 "
TOP_TEXT = "这是窗口的顶部内容"
BOTTOM_TEXT = "这是固定在窗口底部的内容"
LOG_HEIGHT = 10


def make_layout() -> RenderableType:
    """A framed window: content at the top, a log pane fixed to the bottom."""
    log_pane = Panel(
        Align.center(Text(BOTTOM_TEXT)),
        title=LOG_TITLE,
        height=LOG_HEIGHT + 2,
    )
    body = Layout(name="content")
    body.split_column(
        Layout(Align.center(Text(TOP_TEXT)), name="top", size=1),
        Layout(Text(""), name="filler", ratio=1),
        Layout(log_pane, name="bottom", size=LOG_HEIGHT + 2),
    )
    return Panel(body, title=TITLE)


def render(layout: RenderableType, console: Console | None = None) -> None:
    """Show ``layout``: full screen until interrupted on a terminal, printed once otherwise."""
    console = console or Console()
    if not console.is_terminal:
        console.print(layout)
        return
    with Live(layout, console=console, screen=True, auto_refresh=False):
        try:
            while True:
                time.sleep(0.25)
        except KeyboardInterrupt:
            pass


def main(argv: Sequence[str] | None = None) -> int:
    """Show the worker window; returns the process exit status."""
    set_console_utf8()
    render(make_layout())
    return 0