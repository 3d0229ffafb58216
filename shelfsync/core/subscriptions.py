"""
Opt-out membership of modules and submodules, and queries of which
installed modules depend on them.
"""
from __future__ import annotations

from typing import Any, Iterator

from .state import CatalogState, ModuleManifest

__all__ = [
    "SubscriptionRegistry",
    "iter_required_paths",
    "scoped_name",
]


def scoped_name(module: str, submodule: str | None = None) -> str:
    """
    Get name used to record opt-out of a module or one of its submodules.
    """
    return f"{module}/{submodule}" if submodule else module


def iter_required_paths(trie: Any, prefix: str = "") -> Iterator[str]:
    """
    Walk a requirement trie and yield the required paths. A trie which
    isn't a non-empty mapping requires everything below prefix, which is
    yielded as-is (the empty string for the whole module).
    """
    if not isinstance(trie, dict) or not len(trie):
        yield prefix
        return

    for segment, child in trie.items():
        path = f"{prefix}/{segment}" if prefix else str(segment)
        yield from iter_required_paths(child, path)


class SubscriptionRegistry:
    """
    Interface to subscription state of modules, backed by
    {obj}`CatalogState.opt_outs`.
    """

    _state: CatalogState

    def __init__(self, state: CatalogState):
        self._state = state

    def is_subscribed(self, module: str, submodule: str | None = None) -> bool:
        if module in self._state.opt_outs:
            return False
        if submodule is None:
            return True
        return scoped_name(module, submodule) not in self._state.opt_outs

    def opt_out(self, module: str, submodule: str | None = None) -> bool:
        """
        Record opt-out, returning whether it changed anything.
        """
        name = scoped_name(module, submodule)
        if name in self._state.opt_outs:
            return False
        self._state.opt_outs = sorted(self._state.opt_outs + [name])
        return True

    def opt_in(self, module: str, submodule: str | None = None) -> bool:
        """
        Remove opt-out, returning whether it changed anything.
        """
        name = scoped_name(module, submodule)
        if name not in self._state.opt_outs:
            return False
        self._state.opt_outs = [n for n in self._state.opt_outs if n != name]
        return True

    def rename(self, old: str, new: str):
        """
        Move opt-outs of module and its submodules to new module name.
        """
        renamed: list[str] = []

        for name in self._state.opt_outs:
            if name == old:
                renamed.append(new)
            elif name.startswith(old + "/"):
                renamed.append(new + name[len(old) :])
            else:
                renamed.append(name)

        self._state.opt_outs = sorted(set(renamed))

    def forget(self, module: str):
        """
        Drop opt-outs of module and its submodules.
        """
        self._state.opt_outs = [
            n
            for n in self._state.opt_outs
            if n != module and not n.startswith(module + "/")
        ]

    def excluded_submodules(self, module: str) -> list[str]:
        """
        Get sorted names of the module's submodules which are opted out.
        """
        manifest = self._state.manifests.get(module)
        if manifest is None:
            return []

        return sorted(
            s.name
            for s in manifest.submodules or []
            if not self.is_subscribed(module, s.name)
        )

    def excluded_paths(self, module: str) -> list[str]:
        """
        Get paths owned by opted-out submodules, which must not be installed.
        """
        manifest = self._state.manifests.get(module)
        if manifest is None:
            return []

        excluded = set(self.excluded_submodules(module))
        return [
            path
            for s in manifest.submodules or []
            if s.name in excluded
            for path in s.paths
        ]

    def dependents(
        self, module: str, submodule: str | None = None
    ) -> list[str]:
        """
        Get installed modules requiring the given module, or the given
        submodule's paths. Requirements of a dependent's submodules count
        only if that submodule is subscribed; dependents are reported as
        `"Module"` or `"Module/Submodule"`.
        """
        owned: list[str] | None = None

        if submodule is not None:
            manifest = self._state.manifests.get(module)
            sub = manifest.get_submodule(submodule) if manifest else None
            owned = sub.paths if sub else []

        dependents: list[str] = []

        for name in sorted(self._state.installed):
            manifest = self._state.manifests.get(name)
            if name == module or manifest is None:
                continue

            for dependent, requires in self._iter_requires(name, manifest):
                if module in requires and _overlaps(requires[module], owned):
                    dependents.append(dependent)

        return dependents

    def _iter_requires(
        self, name: str, manifest: ModuleManifest
    ) -> Iterator[tuple[str, dict[str, Any]]]:
        yield name, manifest.requires

        for sub in manifest.submodules or []:
            if self.is_subscribed(name, sub.name):
                yield scoped_name(name, sub.name), sub.requires


def _overlaps(trie: Any, owned: list[str] | None) -> bool:
    """
    Check if any required path in trie overlaps any owned path, where `None`
    means the whole module is owned.
    """
    if owned is None:
        return True

    for required in iter_required_paths(trie):
        if not required:
            return True

        for path in owned:
            path = path.strip("/")
            if (
                required == path
                or required.startswith(path + "/")
                or path.startswith(required + "/")
            ):
                return True

    return False
