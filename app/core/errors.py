"""
Reaper Errors
=============
Ordinary failures raised by the store and canceler collaborators.

Any ReaperError aborts the current sweep pass and is retried on the next
tick. Exceptions outside this hierarchy are treated as unexpected faults
and are only caught at the pass boundary.
"""


class ReaperError(Exception):
    """Base class for expected collaborator failures."""


class StoreError(ReaperError):
    """A build, stage or repository read failed."""


class NotFoundError(StoreError):
    """The requested record does not exist."""


class CancelError(ReaperError):
    """The canceler could not cancel a build."""
