"""
Entry point of `shelfsync` CLI.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import Awaitable, Callable

import dotenv
from typer import BadParameter
from pydantic import ValidationError
from rich.table import Table
from typer import Argument, Context, Exit, Option

from ..config import Config
from ..core import HttpFetcher, Shelf, ShelfError, StateStore
from ..core.hashing import fingerprint_folder
from ._utils import (
    ConsolePrompter,
    MainTyper,
    console,
    format_timestamp,
    get_root_context,
    logger,
    lookup_param,
)

dotenv.load_dotenv()

app = MainTyper(
    "shelfsync",
    help="Keep versioned content modules synchronized into local folders",
)


@app.callback()
def main(
    ctx: Context,
    config_file: Path = Option(
        "shelfsync.yaml",
        "--config",
        help=".yaml file containing root folder, catalog URL and tunables",
        envvar="SHELFSYNC_CONFIG_FILE",
        dir_okay=False,
    ),
    yes: bool = Option(
        False,
        "-y",
        "--yes",
        help="Don't ask for confirmation, answer every question affirmatively",
    ),
):
    # Load environment variables from .env file if it exists
    dotenv.load_dotenv(Path(".env").resolve(), override=True)

    ctx.obj = RootContext(ctx=ctx, config_file=config_file, yes=yes)


@app.command()
def update(
    ctx: Context,
    force: bool = Option(
        False,
        "--force",
        help="Check everything now, regardless of when it was last checked",
    ),
):
    """
    Check for and install module updates
    """
    root_context = get_root_context(ctx)
    root_context.run(lambda shelf: shelf.update(force=force))


@app.command()
def status(ctx: Context):
    """
    Show modules and their install status
    """
    root_context = get_root_context(ctx)

    async def show(shelf: Shelf):
        table = Table("Module", "Source", "Installed", "Latest", "Subscribed")

        for s in shelf.status():
            latest = s.latest_version or "?"
            if s.installed_version and not s.current:
                latest = f"[yellow]{latest}[/yellow]"

            table.add_row(
                s.name,
                "catalog" if s.canonical else "user",
                s.installed_version or "-",
                latest,
                "yes" if s.subscribed else "no",
            )

        console.print(table)
        logger.info(f"Last checked: {format_timestamp(shelf.last_checked())}")

    root_context.run(show)


@app.command()
def add(
    ctx: Context,
    url: str = Argument(help="URL of module manifest"),
):
    """
    Register a module which isn't in the catalog
    """
    root_context = get_root_context(ctx)

    async def do_add(shelf: Shelf):
        manifest = await shelf.add_module(url)
        logger.info(
            f"Added '{manifest.module_name}' v{manifest.version}, run `update` to install it"
        )

    root_context.run(do_add)


@app.command()
def subscribe(
    ctx: Context,
    name: str = Argument(help="Module name"),
    submodule: str | None = Option(None, help="Submodule name"),
):
    """
    Resume automatic install and update of a module or submodule
    """
    root_context = get_root_context(ctx)
    root_context.run(lambda shelf: shelf.subscribe(name, submodule))


@app.command()
def unsubscribe(
    ctx: Context,
    name: str = Argument(help="Module name"),
    submodule: str | None = Option(None, help="Submodule name"),
    keep_files: bool = Option(
        False,
        "--keep-files",
        help="Don't offer to delete the module's folder",
    ),
):
    """
    Stop automatic install and update of a module or submodule
    """
    root_context = get_root_context(ctx)
    root_context.run(
        lambda shelf: shelf.unsubscribe(name, submodule, silent=keep_files)
    )


@app.command()
def fingerprint(
    path: Path = Argument(
        help="Folder to fingerprint",
        exists=True,
        file_okay=False,
    ),
):
    """
    Print fingerprint of a folder
    """
    try:
        digest = asyncio.run(fingerprint_folder(path))
    except ShelfError as e:
        logger.error(str(e))
        raise Exit(code=1)

    console.print(digest)


def run():
    app()


@dataclass(kw_only=True)
class RootContext:
    ctx: Context
    config_file: Path
    yes: bool

    @cached_property
    def config(self) -> Config:
        # ensure config file exists
        if not self.config_file.is_file():
            raise BadParameter(
                message=f"file does not exist: {self.config_file}",
                ctx=self.ctx,
                param=lookup_param(self.ctx, "config_file"),
            )

        # get config from file
        try:
            return Config.load_yaml(self.config_file)
        except (ValueError, ValidationError) as e:
            raise BadParameter(
                f"failed to load config file '{self.config_file}': {e}",
                ctx=self.ctx,
                param=lookup_param(self.ctx, "config_file"),
            )

    def run(self, func: Callable[[Shelf], Awaitable[object]]):
        """
        Create shelf and run coroutine with it, exiting with an error code
        upon failure.
        """
        config = self.config

        async def run_shelf():
            async with HttpFetcher(
                timeout=config.request_timeout, logger=logger
            ) as fetcher:
                assert config.state_file
                shelf = Shelf(
                    root_dir=config.root_dir,
                    store=StateStore(config.state_file, logger=logger),
                    fetcher=fetcher,
                    prompter=ConsolePrompter(yes=self.yes),
                    catalog_url=config.catalog_url,
                    settings=config.to_settings(),
                    logger=logger,
                )
                await func(shelf)

        try:
            asyncio.run(run_shelf())
        except ShelfError as e:
            logger.error(str(e))
            raise Exit(code=1)


if __name__ == "__main__":
    app()
