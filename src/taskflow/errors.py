# src/taskflow/errors.py

"""
Error taxonomy.

- InvariantViolation: programming errors (never caught by the core).
- UnresolvedTarget: a command keyword matched no task (caught per operation).
- ServiceUnavailable: an external AI call failed or returned garbage.
- MalformedResponse: the payload parsed but has the wrong shape.
"""

from __future__ import annotations


class TaskflowError(Exception):
    """Base class for all taskflow errors."""


class InvariantViolation(TaskflowError):
    """A store invariant would be broken (duplicate id, bad field value...)."""


class UnresolvedTarget(TaskflowError, LookupError):
    def __init__(self, keyword: str) -> None:
        super().__init__(f"No task matches keyword {keyword!r}")
        self.keyword = keyword


class ServiceUnavailable(TaskflowError, RuntimeError):
    """External AI service failed (network, auth, unparseable payload)."""


class MalformedResponse(ServiceUnavailable):
    """External payload failed structural validation."""
