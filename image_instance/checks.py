"""
Predicates over image state for the convergence poller.
"""

from typing import Optional

from .errors import SnapshotCountAnomaly
from .models import BackupPhase, ImageRecord

PENDING = "pending"
AVAILABLE = "available"


def snapshot_convergence_check(provider, record: ImageRecord, volume_count: int,
                               phase: Optional[BackupPhase] = None):
    """
    Build a predicate that is done once the image has one snapshot per source volume.
    
    ``volume_count`` comes from the source instance, captured before the
    image existed; the image's own mappings may not be populated yet.
    Snapshot slots without an id are not counted.
    
    Raises (from the predicate):
        SnapshotCountAnomaly: If more snapshots than volumes are reported
    """
    def predicate():
        description = provider.describe_image(record.image_id, record.region)
        realized = description.realized_snapshot_ids
        if len(realized) > volume_count:
            raise SnapshotCountAnomaly(record.image_id, volume_count, len(realized), phase)
        record.observe(description)
        return len(realized) == volume_count, len(realized)
    
    return predicate


def image_state_check(provider, record: ImageRecord):
    """Build a predicate that is done once the image has left the pending state."""
    def predicate():
        description = provider.describe_image(record.image_id, record.region)
        record.observe(description)
        state = description.state
        return state is not None and state != PENDING, state
    
    return predicate
