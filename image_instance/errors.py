"""Backup errors - structured error hierarchy.

Every fatal condition of a run is a ``BackupError`` so the CLI can catch the
whole family with a single ``except`` clause.

Hierarchy::

    BackupError
      ├── ResolutionError        ── instance id, region or zone unknown
      ├── CreationError          ── create/copy image returned no id
      ├── ConvergenceTimeout     ── snapshots never materialised in time
      ├── SnapshotCountAnomaly   ── more snapshots than volumes
      ├── TerminalStateError     ── image did not become available
      ├── TaggingError           ── create-tags failed
      └── BackupCancelled        ── operator aborted the run
"""

from typing import Optional

from .models import BackupPhase


class BackupError(Exception):
    """Base exception for all fatal backup conditions."""

    def __init__(self, message: str, phase: Optional[BackupPhase] = None,
                 resource_id: Optional[str] = None):
        self.phase = phase
        self.resource_id = resource_id
        super().__init__(message)


class ResolutionError(BackupError):
    """Raised when the instance id, region or availability zone is unknown."""

    def __init__(self, message: str, resource_id: Optional[str] = None):
        super().__init__(message, BackupPhase.RESOLVING, resource_id)


class CreationError(BackupError):
    """Raised when an image or image copy cannot be created."""

    pass


class ConvergenceTimeout(BackupError):
    """Raised when an image's snapshots do not all appear before the deadline."""

    def __init__(self, image_id: str, region: str, expected: int, observed: int,
                 elapsed: float, phase: Optional[BackupPhase] = None):
        self.expected = expected
        self.observed = observed
        self.elapsed = elapsed
        super().__init__(
            f"failed to get all snapshot ids for ami {image_id} in {region}: "
            f"{observed}/{expected} after {elapsed:.0f}s",
            phase,
            image_id,
        )


class SnapshotCountAnomaly(BackupError):
    """Raised when an image reports more snapshots than the instance has volumes."""

    def __init__(self, image_id: str, expected: int, observed: int,
                 phase: Optional[BackupPhase] = None):
        self.expected = expected
        self.observed = observed
        super().__init__(
            f"ami {image_id} reports {observed} snapshots but the instance had "
            f"{expected} volumes",
            phase,
            image_id,
        )


class TerminalStateError(BackupError):
    """Raised when an image never reaches the ``available`` state."""

    def __init__(self, image_id: str, state: Optional[str], timed_out: bool,
                 elapsed: float = 0.0, phase: Optional[BackupPhase] = None):
        self.state = state
        self.timed_out = timed_out
        if timed_out:
            message = (f"ami {image_id} is still {state or 'pending'} after "
                       f"{elapsed:.0f}s, not copying it")
        else:
            message = f"ami {image_id} reached terminal state '{state}', not copying it"
        super().__init__(message, phase, image_id)


class TaggingError(BackupError):
    """Raised when tags cannot be applied to a created resource."""

    pass


class BackupCancelled(BackupError):
    """Raised when the run is aborted through its cancel event."""

    pass
