"""
Utilities specific to CLI functionality.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import TYPE_CHECKING

import typer
from click import Parameter
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from typer import Context, Typer

if TYPE_CHECKING:
    from .main import RootContext


console = Console()

rich_handler = RichHandler(
    console=console,
    rich_tracebacks=True,
    show_level=True,
    show_time=True,
    show_path=False,
)
rich_handler.setFormatter(logging.Formatter("%(message)s"))

logger = logging.getLogger("shelfsync")
logger.setLevel(logging.INFO)
logger.addHandler(rich_handler)
logger.propagate = False


class MainTyper(Typer):
    """
    Typer app with preconfigured settings.
    """

    def __init__(self, name: str, *, help: str):
        return super().__init__(
            name=name,
            help=help,
            rich_markup_mode="markdown",
            no_args_is_help=True,
            add_completion=False,
        )


class ConsolePrompter:
    """
    Asks questions and shows messages on the terminal.
    """

    yes: bool
    """
    Answer every question affirmatively without asking.
    """

    _lock: asyncio.Lock
    """
    Held while a question is shown and answered, so concurrent questions
    are asked one at a time.
    """

    def __init__(self, *, yes: bool = False):
        self.yes = yes
        self._lock = asyncio.Lock()

    async def confirm(
        self,
        title: str,
        body: str,
        affirm_label: str = "Do it",
        decline_label: str = "Cancel",
    ) -> bool:
        async with self._lock:
            console.print(f"[bold]{escape(title)}[/bold]")
            console.print(escape(body))

            if self.yes:
                logger.info(f"Answering: {affirm_label}")
                return True

            return await asyncio.to_thread(
                typer.confirm,
                f"{affirm_label}? (otherwise: {decline_label})",
            )

    def notify(self, message: str, duration: float | None = None) -> None:
        logger.info(message)


def get_root_context(ctx: Context) -> RootContext:
    from .main import RootContext

    root_context = ctx.obj
    assert isinstance(root_context, RootContext)
    return root_context


def lookup_param(ctx: Context, name: str) -> Parameter:
    """
    Lookup param by name.
    """
    param = next((p for p in ctx.command.params if p.name == name), None)
    assert param, f"Could not find param with name: {name}"
    return param


def format_timestamp(millis: int | None) -> str:
    """
    Format epoch milliseconds as local date/time.
    """
    if millis is None:
        return "Never"

    dt = datetime.datetime.fromtimestamp(millis / 1000)
    return dt.strftime(r"%Y-%m-%d %H:%M:%S")
