"""Reference backend for the ZenFocus REST contract."""

__version__ = "0.1.0"

DEFAULT_SETTINGS = {
    "focusDuration": 25,
    "shortBreakDuration": 5,
    "longBreakDuration": 15,
    "dailyGoalHours": 4,
}
DEFAULT_THEME = "nature"
THEMES = ("nature", "lofi", "tech", "vintage")
MODES = ("focus", "shortBreak", "longBreak")
