"""
Error taxonomy for graph edits and node runs.

Structural errors are ValueErrors: they are raised synchronously at the graph
store boundary and leave the graph unchanged. Job errors describe a run that
reached the external job system and are converted into a ``failed`` state by
the editor session.
"""
from typing import Optional


class DuplicateId(ValueError):
    pass


class NodeNotFound(ValueError):
    pass


class InvalidConnection(ValueError):
    pass


class DuplicateTarget(ValueError):
    pass


class InvalidTransition(ValueError):
    pass


class ValidationError(ValueError):
    """Missing or malformed input detected before any job is submitted."""


class JobError(RuntimeError):
    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id


class JobFailed(JobError):
    pass


class Timeout(JobError):
    pass


class TransportError(JobError):
    pass
