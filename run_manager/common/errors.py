"""Exception taxonomy for the training run engine.

``ValidationError`` and ``NotFoundError`` are raised synchronously to the
caller and leave state untouched. ``SchedulerFault`` never reaches a caller:
it is raised and caught inside a run's progression loop, logged, and
reflected only through the run's ``failed`` status.
"""
from typing import Optional


class RunManagerError(Exception):
    """Base class for all run manager errors."""
    pass


class ValidationError(RunManagerError):
    """Illegal transition or invalid creation parameters."""
    pass


class NotFoundError(RunManagerError):
    """Unknown run or model id."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} with id {identifier} does not exist")
        self.kind = kind
        self.identifier = identifier


class PermissionDeniedError(RunManagerError):
    """The authorization collaborator rejected the action."""
    pass


class SchedulerFault(RunManagerError):
    """Error raised while computing or persisting an epoch."""

    def __init__(self, run_id: str, epoch: int, cause: Optional[BaseException] = None):
        message = f"Run {run_id} failed at epoch {epoch}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.run_id = run_id
        self.epoch = epoch
        self.cause = cause
