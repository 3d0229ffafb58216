from typing import Protocol

import shelfsync


def test_import():
    # make sure symbols are accessible by fully qualified path
    assert isinstance(shelfsync.core.Shelf, type)
    assert isinstance(shelfsync.core.shelf.ModuleStatus, type)
    assert isinstance(shelfsync.core.archive.ArchiveInstaller, type)
    assert isinstance(shelfsync.core.staleness.StalenessPolicy, type)
    assert issubclass(shelfsync.core.exceptions.NetworkError, Exception)
    assert Protocol in shelfsync.core.fetch.Fetcher.__mro__

    # make sure symbols are accessible from top level
    assert shelfsync.ManifestListSync is shelfsync.core.catalog.ManifestListSync
    assert shelfsync.SubscriptionRegistry is not None

    # ensure no internal symbols accidentally exported
    assert all([not sym.startswith("_") for sym in shelfsync.__all__])
