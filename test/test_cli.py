"""
Test CLI commands which don't require network access.
"""

import asyncio
import logging
import threading
import time
from pathlib import Path

import typer
from conftest import CATALOG_URL, make_manifest, manifest_url
from pytest import MonkeyPatch, fixture, mark
from typer.testing import CliRunner

from shelfsync import *
from shelfsync.cli._utils import ConsolePrompter
from shelfsync.cli.main import app
from shelfsync.config import Config

runner = CliRunner()


class LogHandler(logging.Handler):
    """
    Handler to create a list of logs for testcases to access for verification.
    """

    test_logs: list[str]

    def __init__(self):
        super().__init__()
        self.test_logs = []

    def emit(self, record: logging.LogRecord):
        self.test_logs.append(record.getMessage())


@fixture
def log_handler():
    handler = LogHandler()
    logger = logging.getLogger("shelfsync")
    logger.addHandler(handler)
    yield handler
    logger.removeHandler(handler)


@fixture
def config_path(tmp_path: Path, root_dir: Path) -> Path:
    """
    Create config file along with state of a single module.
    """
    path = tmp_path / "shelfsync.yaml"
    config = Config(root_dir=root_dir, catalog_url=CATALOG_URL)
    config.dump_yaml(path)

    assert config.state_file
    config.state_file.parent.mkdir(parents=True)

    state = CatalogState(
        canonical={"Mod": manifest_url("Mod")},
        manifests={"Mod": make_manifest("Mod", "1.1.0")},
        installed={"Mod": InstalledRecord(version="1.0.0", content_hash="x")},
        opt_outs=["Mod"],
    )
    state.dump_yaml(config.state_file)

    return path


def test_config(tmp_path: Path, root_dir: Path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"root_dir: {root_dir}\ncatalog_url: {CATALOG_URL}\nconstrained: true\n"
    )

    config = Config.load_yaml(path)

    assert config.state_file == root_dir / ".shelfsync" / "state.yaml"

    settings = config.to_settings()
    assert settings.constrained
    assert settings.heuristic_item_threshold == 2000
    assert settings.punt_window.total_seconds() == 24 * 3600


def test_status(config_path: Path, log_handler: LogHandler):
    _run(["--config", config_path, "status"])

    assert log_handler.test_logs == ["Last checked: Never"]


def test_subscribe(config_path: Path, root_dir: Path):
    store = StateStore(root_dir / ".shelfsync" / "state.yaml")

    _run(["--config", config_path, "subscribe", "Mod"])
    assert store.load().opt_outs == []

    _run(["--config", config_path, "unsubscribe", "Mod", "--keep-files"])
    assert store.load().opt_outs == ["Mod"]

    _run(["--config", config_path, "subscribe", "Nope"], 1)


def test_config_errors(tmp_path: Path):
    # nonexistent config file
    _run(["--config", tmp_path / "nonexistent.yaml", "status"], 2)

    # invalid config file
    invalid_config_path = tmp_path / "invalid.yaml"
    invalid_config_path.write_text("")
    _run(["--config", invalid_config_path, "status"], 2)

    # nonexistent root folder
    invalid_config_path.write_text(
        f"root_dir: {tmp_path / 'nonexistent'}\ncatalog_url: {CATALOG_URL}\n"
    )
    _run(["--config", invalid_config_path, "status"], 2)


def test_fingerprint(tmp_path: Path):
    (tmp_path / "a.txt").write_text("A")

    result = _run(["fingerprint", tmp_path])

    assert result.stdout.strip() == digest_entries(
        [("a.txt", hash_bytes(b"A"))]
    )


@mark.asyncio
async def test_confirm_serialized(monkeypatch: MonkeyPatch):
    """
    Concurrent questions are asked one at a time.
    """
    answers = [True, False]
    lock = threading.Lock()
    active = 0
    max_active = 0

    def confirm(text: str) -> bool:
        nonlocal active, max_active
        with lock:
            active += 1
            max_active = max(max_active, active)
        time.sleep(0.05)
        with lock:
            active -= 1
            return answers.pop(0)

    monkeypatch.setattr(typer, "confirm", confirm)
    prompter = ConsolePrompter()

    results = await asyncio.gather(
        prompter.confirm("First", "First question"),
        prompter.confirm("Second", "Second question"),
    )

    assert max_active == 1
    assert results == [True, False]


def test_confirm_yes(monkeypatch: MonkeyPatch):
    def confirm(text: str) -> bool:
        assert False, "Should not ask"

    monkeypatch.setattr(typer, "confirm", confirm)

    assert asyncio.run(ConsolePrompter(yes=True).confirm("Title", "Body"))


def _run(cmd: list[str | Path], exit_code: int = 0):
    """
    Run command and verify exit code.
    """
    result = runner.invoke(
        app, args=[str(c) for c in cmd], catch_exceptions=False
    )
    assert result.exit_code == exit_code, result.stdout
    return result
