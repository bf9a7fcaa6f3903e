"""
Backup orchestrator: image creation, tagging, convergence waits and replication.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from .checks import AVAILABLE, image_state_check, snapshot_convergence_check
from .errors import BackupCancelled, BackupError, ConvergenceTimeout, TerminalStateError
from .expiry import format_timestamp
from .ids import image_description, image_name
from .models import (
    BackupPhase, BackupRequest, BackupResult, ImageRecord, InstancePlacement, TimedOut
)
from .poll import ConvergencePoller
from .tags import ResourceTagger, build_tag_set

logger = logging.getLogger(__name__)


class BackupOrchestrator:
    """Runs one backup of one instance, start to finish."""

    def __init__(
        self,
        provider,
        request: BackupRequest,
        poller: Optional[ConvergencePoller] = None,
        clock: Callable[[], float] = time.time,
        cancel_event: Optional[threading.Event] = None,
        tag_wait: Tuple[float, float] = (1, 10),
    ):
        self.provider = provider
        self.request = request
        self.cancel_event = cancel_event
        self.poller = poller or ConvergencePoller(
            interval=request.poll_interval,
            timeout=request.timeout,
            cancel_event=cancel_event,
        )
        self.clock = clock
        self.tag_wait = tag_wait
        self.phase = BackupPhase.RESOLVING

    def _enter(self, phase: BackupPhase) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise BackupCancelled(f"cancelled before {phase.value}", self.phase)
        logger.info(f"Phase {self.phase.value} -> {phase.value}")
        self.phase = phase

    def run(self) -> BackupResult:
        """
        Execute the backup.

        Returns:
            BackupResult describing the image (and copy, if requested)

        Raises:
            BackupError: On any fatal condition; the phase it happened in is
                recorded on the exception. Created resources are left in place.
        """
        try:
            return self._run()
        except BackupError as e:
            if e.phase is None:
                e.phase = self.phase
            logger.error(f"Backup of {self.request.instance_id} failed during {e.phase.value}: {e}")
            raise

    def _run(self) -> BackupResult:
        request = self.request

        placement, volume_count = self.resolve_placement()

        self._enter(BackupPhase.CREATING)
        created_at = self.clock()
        name = image_name(placement.display_name, int(created_at))
        description = image_description(placement.display_name)
        tags = build_tag_set(
            placement,
            format_timestamp(datetime.fromtimestamp(created_at, timezone.utc)),
            request.expire,
        )
        tagger = ResourceTagger(
            self.provider, tags, attempts=request.tag_attempts,
            wait_min=self.tag_wait[0], wait_max=self.tag_wait[1],
        )

        image_id = self.provider.create_image(request.instance_id, request.region, name, description)
        logger.info(f"Created image {image_id} ({name}) for {request.instance_id}")
        image = ImageRecord(image_id=image_id, region=request.region, name=name, volume_count=volume_count)

        self.secure_image(image, tagger, BackupPhase.TAGGING_IMAGE, BackupPhase.AWAITING_SNAPSHOTS)

        if not request.dest_region:
            self._enter(BackupPhase.DONE)
            return BackupResult(placement=placement, image=image)

        self.await_available(image)

        self._enter(BackupPhase.COPYING)
        copy_id = self.provider.copy_image(request.region, image_id, request.dest_region, name, description)
        logger.info(f"Copying image {image_id} to {request.dest_region} as {copy_id}")
        copy = ImageRecord(image_id=copy_id, region=request.dest_region, name=name, volume_count=volume_count)

        self.secure_image(copy, tagger, BackupPhase.TAGGING_COPY, BackupPhase.AWAITING_COPY_SNAPSHOTS)

        self._enter(BackupPhase.DONE)
        return BackupResult(placement=placement, image=image, copy=copy)

    def resolve_placement(self) -> Tuple[InstancePlacement, int]:
        """Describe the source instance; the volume count is taken before any image exists."""
        details = self.provider.resolve_instance(self.request.instance_id, self.request.region)
        placement = InstancePlacement(
            instance_id=self.request.instance_id,
            region=self.request.region,
            availability_zone=details.availability_zone,
            display_name=details.display_name,
        )
        logger.info(
            f"Instance {placement.instance_id} ({placement.display_name}) in "
            f"{placement.availability_zone} has {details.volume_count} EBS volumes"
        )
        return placement, details.volume_count

    def secure_image(self, image: ImageRecord, tagger: ResourceTagger,
                     tagging_phase: BackupPhase, awaiting_phase: BackupPhase) -> None:
        """
        Tag an image, wait for all its snapshots, then tag each snapshot.

        Used for the source image and for its cross-region copy alike.
        """
        self._enter(tagging_phase)
        tagger.apply(image.region, image.image_id)

        self._enter(awaiting_phase)
        outcome = self.poller.wait(
            snapshot_convergence_check(self.provider, image, image.volume_count, awaiting_phase),
            label=f"snapshots of {image.image_id}",
        )
        if isinstance(outcome, TimedOut):
            raise ConvergenceTimeout(
                image.image_id, image.region, image.volume_count, outcome.observed or 0,
                outcome.elapsed, awaiting_phase,
            )
        logger.info(
            f"Image {image.image_id} has all {image.volume_count} snapshots after {outcome.elapsed:.0f}s"
        )

        # Snapshots survive image deregistration, so they need their own tags.
        tagger.apply_all(image.region, image.snapshot_ids)

    def await_available(self, image: ImageRecord) -> None:
        """Wait for the image to leave 'pending'; anything but 'available' is fatal."""
        self._enter(BackupPhase.AWAITING_IMAGE_AVAILABLE)
        outcome = self.poller.wait(
            image_state_check(self.provider, image),
            label=f"state of {image.image_id}",
        )
        if isinstance(outcome, TimedOut):
            raise TerminalStateError(
                image.image_id, outcome.observed, timed_out=True,
                elapsed=outcome.elapsed, phase=BackupPhase.AWAITING_IMAGE_AVAILABLE,
            )
        if outcome.observed != AVAILABLE:
            raise TerminalStateError(
                image.image_id, outcome.observed, timed_out=False,
                phase=BackupPhase.AWAITING_IMAGE_AVAILABLE,
            )
        logger.info(f"Image {image.image_id} is available after {outcome.elapsed:.0f}s")
