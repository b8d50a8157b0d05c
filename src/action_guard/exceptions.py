"""Custom exceptions for the action_guard package."""

from __future__ import annotations


class GuardError(Exception):
    """Base exception for all guard-related errors."""


class GuardConfigError(GuardError):
    """Raised at setup time when a step, limiter or provider is misconfigured."""

    def __init__(self, component: str, message: str) -> None:
        self.component = component
        super().__init__(f"'{component}' misconfigured: {message}")


class AuthNotConfiguredError(GuardError):
    """Raised when an ``auth`` step runs on a guard without an auth provider."""

    def __init__(self) -> None:
        super().__init__("Auth provider not configured")
