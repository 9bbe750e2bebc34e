from __future__ import annotations


class ValidationError(ValueError):
    """Caller misuse; raised before any state is mutated."""


class InvariantViolation(RuntimeError):
    """A corrupted rule reached the engine; never guessed past."""
