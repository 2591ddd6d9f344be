"""Local cleaning, validation and prioritization tools for client/worker/task spreadsheets."""

__version__ = "0.1.0"
