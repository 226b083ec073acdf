"""
Base error type for Pocketbook.

Every error raised across a module boundary carries a short,
non-technical message that the UI can show as-is. The technical
cause stays in the exception text and in the logs.
"""

from typing import Optional


class PocketbookError(Exception):
    """Base exception for all Pocketbook errors."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: str = "", user_message: Optional[str] = None):
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message
