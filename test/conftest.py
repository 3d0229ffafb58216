import io
import json
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

import httpx
from pytest import FixtureRequest, fixture

from shelfsync import *

logging.basicConfig(level=logging.WARNING)

BASE_URL = "https://modules.example.com"
CATALOG_URL = f"{BASE_URL}/catalog.json"

# arbitrary fixed start time: 2024-01-01 00:00:00 UTC
START_MILLIS = 1_704_067_200_000

MARKERS = [
    "answers",
]


def pytest_configure(config) -> None:
    for marker in MARKERS:
        config.addinivalue_line("markers", marker)


def manifest_url(name: str) -> str:
    return f"{BASE_URL}/{name}/manifest.json"


def archive_url(name: str, version: str) -> str:
    return f"{BASE_URL}/{name}/{version}.zip"


def make_zip(
    files: dict[str, str | bytes], dirs: list[str] | None = None
) -> bytes:
    """
    Build zip archive in memory from mapping of path to content.
    """
    buffer = io.BytesIO()

    with zipfile.ZipFile(buffer, "w") as zf:
        for path in dirs or []:
            zf.writestr(path.rstrip("/") + "/", b"")
        for path, content in files.items():
            zf.writestr(path, content)

    return buffer.getvalue()


def make_manifest(
    name: str,
    version: str = "1.0.0",
    *,
    requires: dict[str, Any] | None = None,
    submodules: list[dict[str, Any]] | None = None,
    zip_url: str | None = None,
) -> dict[str, Any]:
    manifest: dict[str, Any] = {
        "folder": name,
        "more_info": f"{BASE_URL}/{name}",
        "description": f"Test module {name}",
        "version": version,
        "requires": requires or {},
        "zip": zip_url or archive_url(name, version),
    }

    if submodules is not None:
        manifest["submodules"] = submodules

    return manifest


def snapshot_folder(root: Path) -> dict[str, bytes]:
    """
    Get mapping of relative path to content of every file under root.
    """
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


class FakeClock:
    """
    Clock which only advances when told to.
    """

    now: int

    def __init__(self, now: int = START_MILLIS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, delta: timedelta):
        self.now += int(delta.total_seconds() * 1000)


@dataclass
class ScriptedPrompter:
    """
    Answers confirmations from a script, recording what was asked and
    notified.
    """

    answers: list[bool] = field(default_factory=list)
    """
    Answers to give in order; once exhausted, `default` is given.
    """

    default: bool = True
    confirms: list[tuple[str, str]] = field(default_factory=list)
    notifications: list[str] = field(default_factory=list)

    async def confirm(
        self,
        title: str,
        body: str,
        affirm_label: str = "Do it",
        decline_label: str = "Cancel",
    ) -> bool:
        self.confirms.append((title, body))
        return self.answers.pop(0) if len(self.answers) else self.default

    def notify(self, message: str, duration: float | None = None) -> None:
        self.notifications.append(message)

    @property
    def titles(self) -> list[str]:
        return [title for title, _ in self.confirms]


class FakeServer:
    """
    In-memory web server, served to the code under test via
    `httpx.MockTransport`.
    """

    routes: dict[str, Callable[[], httpx.Response]]
    requests: list[str]

    def __init__(self):
        self.routes = {}
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)

        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404)
        return route()

    def set_bytes(self, url: str, content: bytes):
        self.routes[url] = lambda: httpx.Response(200, content=content)

    def set_json(self, url: str, data: Any):
        self.set_bytes(url, json.dumps(data).encode())

    def set_error(self, url: str, status_code: int = 500):
        self.routes[url] = lambda: httpx.Response(status_code)

    def set_catalog(self, catalog: dict[str, str]):
        self.set_json(CATALOG_URL, catalog)

    def publish(
        self,
        name: str,
        version: str,
        files: dict[str, str | bytes],
        *,
        url_name: str | None = None,
        **kwargs,
    ) -> str:
        """
        Publish manifest and archive of a module, returning manifest URL.
        The manifest is served under `url_name` if given, so a module can be
        renamed while keeping its URL.
        """
        url = manifest_url(url_name or name)
        self.set_json(url, make_manifest(name, version, **kwargs))
        self.set_bytes(archive_url(name, version), make_zip(files))
        return url

    def count(self, url: str) -> int:
        return self.requests.count(url)


@fixture
def clock() -> FakeClock:
    return FakeClock()


@fixture
def prompter(request: FixtureRequest) -> ScriptedPrompter:
    """
    Scripted prompter; answers can be given using decorator like:

    @mark.answers(False, True)
    """
    marker = request.node.get_closest_marker("answers")
    answers = list(marker.args) if marker else []
    return ScriptedPrompter(answers=answers)


@fixture
def server() -> FakeServer:
    return FakeServer()


@fixture
def fetcher(server: FakeServer) -> HttpFetcher:
    return HttpFetcher(transport=httpx.MockTransport(server.handler))


@fixture
def root_dir(tmp_path: Path) -> Path:
    path = tmp_path / "root"
    path.mkdir()
    return path


@fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state" / "state.yaml")


@fixture
def settings() -> SyncSettings:
    return SyncSettings(constrained=False)


@fixture
def shelf(
    root_dir: Path,
    store: StateStore,
    fetcher: HttpFetcher,
    prompter: ScriptedPrompter,
    clock: FakeClock,
    settings: SyncSettings,
) -> Shelf:
    return Shelf(
        root_dir=root_dir,
        store=store,
        fetcher=fetcher,
        prompter=prompter,
        catalog_url=CATALOG_URL,
        settings=settings,
        clock=clock,
    )


@fixture
def ctx(shelf: Shelf) -> SyncContext:
    return shelf.context
