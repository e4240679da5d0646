"""
Scoreboard - Rubric Scoring and Leaderboard Engine

This package contains the core modules for:
- Rubric validation and judge score aggregation (scoreboard.scoring)
- Leaderboard ranking, single-flight recomputation and trends (scoreboard.ranking)
- Score and leaderboard snapshot storage (scoreboard.storage)
- Judge score CSV import (scoreboard.ingestion)
- Shared configuration and utilities
"""

from scoreboard.config import *
