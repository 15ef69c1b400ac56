"""
Exception types raised by the error-processing core.

The pipeline distinguishes:
- hard failures (EventNotFound) that abort one invocation
- races (GroupAlreadyExists) recovered inside find-or-create
- boundary failures (ProjectUnauthorized, InvalidEnvelope) returned to clients
"""


class FaultlineError(Exception):
    """Base class for all application errors."""


class EventNotFound(FaultlineError):
    """The event to process is not in the Event Store."""

    def __init__(self, event_id: str):
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id


class GroupAlreadyExists(FaultlineError):
    """A group with the same (project_id, fingerprint_hash) was created concurrently."""

    def __init__(self, project_id: str, fingerprint_hash: str):
        super().__init__(
            f"Error group already exists for project {project_id} "
            f"and fingerprint {fingerprint_hash[:12]}"
        )
        self.project_id = project_id
        self.fingerprint_hash = fingerprint_hash


class GroupNotFound(FaultlineError):
    """A group id does not resolve to a row."""

    def __init__(self, group_id: str):
        super().__init__(f"Error group {group_id} not found")
        self.group_id = group_id


class ProjectUnauthorized(FaultlineError):
    """Unknown project key or inactive project."""


class InvalidEnvelope(FaultlineError):
    """A Sentry envelope body could not be decoded into an event."""


class AIResponseError(FaultlineError):
    """The AI provider returned text that is not a usable analysis."""
