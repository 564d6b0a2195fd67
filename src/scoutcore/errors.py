"""
Error taxonomy for ScoutCore.

These exceptions are raised and handled inside the core. Nothing below the
pipeline boundary lets them escape: the orchestrator turns each of them into
the ``error`` field of an ``ExtractionResult``.
"""

from __future__ import annotations

from typing import Optional


class ScoutError(Exception):
    """Base class for all ScoutCore errors."""


class ClassificationFailure(ScoutError):
    """AI classification timed out or returned unusable output.

    Always recovered through the keyword classifier.
    """


class StrategyFailure(ScoutError):
    """One extraction strategy failed against one target."""

    def __init__(self, message: str, *, strategy: Optional[str] = None, target: Optional[str] = None) -> None:
        super().__init__(message)
        self.strategy = strategy
        self.target = target

    def __str__(self) -> str:
        message = super().__str__()
        if self.strategy:
            return f"{self.strategy}: {message}"
        return message


class TargetExhausted(ScoutError):
    """Every strategy failed for a target."""


class PipelineTimeout(ScoutError):
    """The global time budget of a pipeline run was exceeded."""


class NoSourcesAvailable(ScoutError):
    """The catalog returned no targets for a category."""


class AIUnavailable(ScoutError):
    """The AI completion endpoint failed, timed out or is not configured."""


class BridgeUnavailable(ScoutError):
    """The browser bridge is not attached or did not answer in time."""


class RemoteJobFailed(ScoutError):
    """The server-side extraction job failed or never completed."""
