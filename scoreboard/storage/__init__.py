"""
Storage

Modules:
- scores: Judge score store (last write wins per submission and judge)
- snapshots: Append-only leaderboard snapshots with history queries
- scheduler: Periodic snapshot retention
"""


def __getattr__(name):
    """Lazy imports to avoid RuntimeWarning when running modules directly."""
    if name == "InMemoryScoreStore":
        from scoreboard.storage.scores import InMemoryScoreStore
        return InMemoryScoreStore
    if name == "InMemorySnapshotStore":
        from scoreboard.storage.snapshots import InMemorySnapshotStore
        return InMemorySnapshotStore
    if name == "JsonSnapshotStore":
        from scoreboard.storage.snapshots import JsonSnapshotStore
        return JsonSnapshotStore
    if name == "CleanupScheduler":
        from scoreboard.storage.scheduler import CleanupScheduler
        return CleanupScheduler
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
