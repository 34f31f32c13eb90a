"""AI response orchestration core for study assistant panels."""

__version__ = "0.1.0"
