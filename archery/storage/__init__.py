"""
Storage

Modules:
- repository: Repository contract and in-memory implementation
- snapshot: CSV snapshots and debounced flushing
"""


def __getattr__(name):
    """Lazy imports to avoid circular imports with archery.scoring."""
    if name == "InMemoryRepository":
        from archery.storage.repository import InMemoryRepository
        return InMemoryRepository
    if name == "save_snapshot":
        from archery.storage.snapshot import save_snapshot
        return save_snapshot
    if name == "load_snapshot":
        from archery.storage.snapshot import load_snapshot
        return load_snapshot
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
