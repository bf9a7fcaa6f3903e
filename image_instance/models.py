"""
Data models for a single backup run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Union


class BackupPhase(Enum):
    """States of a backup run, in the order they are entered."""
    RESOLVING = "resolving"
    CREATING = "creating"
    TAGGING_IMAGE = "tagging_image"
    AWAITING_SNAPSHOTS = "awaiting_snapshots"
    AWAITING_IMAGE_AVAILABLE = "awaiting_image_available"
    COPYING = "copying"
    TAGGING_COPY = "tagging_copy"
    AWAITING_COPY_SNAPSHOTS = "awaiting_copy_snapshots"
    DONE = "done"


@dataclass(frozen=True)
class BackupRequest:
    """Inputs of one invocation. Never mutated once built."""
    instance_id: str
    region: str
    dest_region: Optional[str] = None
    expire: Optional[str] = None  # already formatted for the Expire tag
    timeout: int = 28800
    poll_interval: int = 15
    profile: Optional[str] = None
    tag_attempts: int = 3


@dataclass(frozen=True)
class InstanceDetails:
    """What the provider reports about the source instance."""
    availability_zone: str
    display_name: str
    volume_count: int


@dataclass(frozen=True)
class InstancePlacement:
    """Where the source instance lives and what it is called."""
    instance_id: str
    region: str
    availability_zone: str
    display_name: str


@dataclass(frozen=True)
class ImageDescription:
    """A single describe-image observation."""
    state: Optional[str]
    snapshot_ids: List[Optional[str]] = field(default_factory=list)

    @property
    def realized_snapshot_ids(self) -> List[str]:
        return [s for s in self.snapshot_ids if s]


@dataclass
class ImageRecord:
    """An image created (or copied) by this run."""
    image_id: str
    region: str
    name: str
    volume_count: int
    state: Optional[str] = "pending"
    snapshot_ids: List[str] = field(default_factory=list)

    def observe(self, description: ImageDescription) -> None:
        """Fold a fresh observation into the record."""
        self.state = description.state
        for snapshot_id in description.realized_snapshot_ids:
            if snapshot_id not in self.snapshot_ids:
                self.snapshot_ids.append(snapshot_id)


@dataclass(frozen=True)
class Converged:
    """The predicate was satisfied."""
    elapsed: float
    observed: Any
    polls: int


@dataclass(frozen=True)
class TimedOut:
    """The deadline passed with the predicate still unsatisfied."""
    elapsed: float
    observed: Any
    polls: int


PollOutcome = Union[Converged, TimedOut]


@dataclass
class BackupResult:
    """Outcome of a successful run."""
    placement: InstancePlacement
    image: ImageRecord
    copy: Optional[ImageRecord] = None
    phase: BackupPhase = BackupPhase.DONE

    def to_dict(self) -> dict:
        result = {
            "status": "success",
            "instance_id": self.placement.instance_id,
            "region": self.placement.region,
            "availability_zone": self.placement.availability_zone,
            "image_id": self.image.image_id,
            "image_name": self.image.name,
            "snapshot_ids": list(self.image.snapshot_ids),
        }
        if self.copy is not None:
            result["copy"] = {
                "region": self.copy.region,
                "image_id": self.copy.image_id,
                "snapshot_ids": list(self.copy.snapshot_ids),
            }
        return result
