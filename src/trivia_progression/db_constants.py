from __future__ import annotations

SNAPSHOT_SCHEMA_VERSION = 2
SUPPORTED_SCHEMA_VERSIONS = frozenset({1, 2})
SNAPSHOT_SLOT = "latest"

DEFAULT_AUTO_SAVE_MINUTES = 30

# (id, title, description, kind, difficulty, target_min, target_max, points, qualifier)
# Accuracy targets are whole percentages, time targets are minutes.
DEFAULT_TASK_TEMPLATES: list[tuple[str, str, str, str, str, int, int, int, str | None]] = [
    ("score-easy-1", "First Steps", "Score {target} points in any single game", "score", "easy", 2, 4, 10, None),
    ("score-easy-2", "Point Starter", "Get {target}+ points in one game", "score", "easy", 2, 4, 10, None),
    ("games-easy-1", "Game Starter", "Play {target} games in any mode", "games-played", "easy", 1, 2, 10, None),
    ("time-easy-1", "Quick Player", "Play for {target} minutes total today", "time", "easy", 3, 5, 10, None),
    ("accuracy-easy-1", "Precision Player", "Get {target}%+ accuracy in one game", "accuracy", "easy", 70, 79, 10, None),
    ("streak-easy-1", "Combo Starter", "Get a {target}x answer streak in any game", "streak", "easy", 2, 3, 10, None),
    ("category-easy-tech", "Tech Taster", "Play {target} games in Technology", "category-match", "easy", 1, 2, 10, "tech"),
    ("category-easy-finance", "Finance First", "Play {target} games in Finance", "category-match", "easy", 1, 2, 10, "finance"),
    ("mode-easy-training", "Training Time", "Play {target} games in Training mode", "mode-match", "easy", 1, 2, 10, "training"),
    ("achievement-easy-1", "Trophy Hunter", "Unlock {target} achievement today", "achievement", "easy", 1, 1, 10, None),
    ("score-medium-1", "Score Surge", "Achieve {target}+ points in a single game", "score", "medium", 5, 8, 25, None),
    ("games-medium-1", "Session Master", "Complete {target} games today", "games-played", "medium", 2, 3, 25, None),
    ("time-medium-1", "Time Master", "Play for {target} minutes today", "time", "medium", 5, 9, 25, None),
    ("accuracy-medium-1", "Accuracy Ace", "Achieve {target}%+ accuracy in a game", "accuracy", "medium", 80, 89, 25, None),
    ("streak-medium-1", "Streak Master", "Reach a {target}x answer streak", "streak", "medium", 4, 6, 25, None),
    ("category-medium-business", "Subject Specialist", "Play {target} games in Business", "category-match", "medium", 2, 3, 25, "business"),
    ("category-medium-marketing", "Topic Titan", "Play {target} games in Marketing", "category-match", "medium", 2, 3, 25, "marketing"),
    ("mode-medium-quick", "Speed Demon", "Complete {target} Quick Play games", "mode-match", "medium", 2, 3, 25, "quick"),
    ("score-hard-1", "Score Legend", "Achieve {target}+ points in a single game", "score", "hard", 8, 12, 50, None),
    ("games-hard-1", "Game Legend", "Play {target} games today", "games-played", "hard", 3, 4, 50, None),
    ("time-hard-1", "Time Legend", "Play for {target} minutes today", "time", "hard", 10, 14, 50, None),
    ("accuracy-hard-1", "Accuracy Legend", "Achieve {target}%+ accuracy in a game", "accuracy", "hard", 90, 94, 50, None),
    ("streak-hard-1", "Streak Sovereign", "Reach a {target}x answer streak", "streak", "hard", 7, 10, 50, None),
    ("category-hard-general", "Domain Dominator", "Play {target} games in General", "category-match", "hard", 3, 4, 50, "general"),
    ("mode-hard-quick", "Speed Sovereign", "Complete {target} Quick Play games", "mode-match", "hard", 3, 4, 50, "quick"),
]

COMPLETION_TASK_ID = "complete-all"
COMPLETION_TASK_TITLE = "Daily Master"
COMPLETION_TASK_DESCRIPTION = "Complete all daily tasks"

# (xp required, title) per level, level 1 first.
DAILY_LEVELS: list[tuple[int, str]] = [
    (0, "Novice"),
    (100, "Apprentice"),
    (250, "Learner"),
    (500, "Student"),
    (800, "Scholar"),
    (1200, "Expert"),
    (1700, "Master"),
    (2300, "Grandmaster"),
    (3000, "Legend"),
    (4000, "Mythic"),
]
