# src/subconscious/errors.py

from __future__ import annotations


class SubconsciousError(Exception):
    """Base class for every error raised by the orchestration core."""

    kind = "error"


class StoreUnavailable(SubconsciousError):
    """The queue store could not be reached or rejected a command."""

    kind = "store_unavailable"


class TaskNotFound(SubconsciousError):
    """A status update matched no queued task."""

    kind = "task_not_found"


class SerializationFailure(SubconsciousError):
    """A stored task record could not be decoded."""

    kind = "serialization_failure"


class CapabilityFailure(SubconsciousError):
    """Transport error or non-success response from the capability endpoint."""

    kind = "capability_failure"


class InvalidTransition(SubconsciousError):
    """A status change that the task lifecycle does not allow (e.g. out of Completed)."""

    kind = "invalid_transition"
