"""Quiz-related constants shared across the core, server and timer layers."""

UNANSWERED: int = -1
ALL_COURSES: str = "all"

DEFAULT_QUESTION_POINTS: float = 1.0
DEFAULT_DURATION_MINUTES: int = 30
DEFAULT_MAX_GRADE: float = 10.0
MIN_OPTION_COUNT: int = 2

PASS_THRESHOLD_PERCENT: int = 70
LOW_TIME_WARNING_SECONDS: int = 300
TICK_INTERVAL_MS: int = 1000
