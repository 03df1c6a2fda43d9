"""commdash: local aggregation of chat, mail, issues, notifications and calendar."""

__version__ = "0.1.0"
