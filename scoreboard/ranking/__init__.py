"""
Leaderboard Ranking

Modules:
- engine: Team and member aggregation with competition ranking
- single_flight: Per-event recomputation guard and refresh pipeline
- trends: Score trends over position history
"""


def __getattr__(name):
    """Lazy imports to avoid RuntimeWarning when running modules directly."""
    if name == "compute_leaderboard":
        from scoreboard.ranking.engine import compute_leaderboard
        return compute_leaderboard
    if name == "compute_member_leaderboard":
        from scoreboard.ranking.engine import compute_member_leaderboard
        return compute_member_leaderboard
    if name == "filter_leaderboard":
        from scoreboard.ranking.engine import filter_leaderboard
        return filter_leaderboard
    if name == "refresh_leaderboard":
        from scoreboard.ranking.single_flight import refresh_leaderboard
        return refresh_leaderboard
    if name == "score_trend":
        from scoreboard.ranking.trends import score_trend
        return score_trend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
