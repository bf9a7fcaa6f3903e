"""
Tagging utilities for backup images and their snapshots.

Snapshots outlive their image when it is deregistered, so each of them
carries the full tag set on its own.
"""

import logging
from typing import Dict, List, Optional

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import CREATOR, NAME_PREFIX
from .errors import TaggingError
from .models import InstancePlacement

logger = logging.getLogger(__name__)


def build_tag_set(placement: InstancePlacement, date: str, expire: Optional[str] = None) -> Dict[str, str]:
    """
    Generate the tags applied to every resource a backup creates.

    Args:
        placement: Source instance placement
        date: Creation date of the backup
        expire: Expiry date; the Expire tag is omitted when None

    Returns:
        Dictionary of tags
    """
    tags = {
        "Name": f"{NAME_PREFIX}{placement.display_name}",
        "Instance": placement.instance_id,
        "Date": date,
        "Creator": CREATOR,
        "AvailabilityZone": placement.availability_zone,
    }

    if expire:
        tags["Expire"] = expire

    return tags


def to_aws_tags(tags: Dict[str, str]) -> List[Dict[str, str]]:
    """Convert a tag mapping to the EC2 ``[{"Key": ..., "Value": ...}]`` shape."""
    return [{"Key": key, "Value": value} for key, value in tags.items()]


def from_aws_tags(tags: List[Dict[str, str]]) -> Dict[str, str]:
    return {tag["Key"]: tag["Value"] for tag in tags or []}


class ResourceTagger:
    """Applies one fixed tag set to any number of resources."""

    def __init__(self, provider, tags: Dict[str, str], attempts: int = 3,
                 wait_min: float = 1, wait_max: float = 10):
        self.provider = provider
        self.tags = dict(tags)
        self.attempts = max(1, attempts)
        self.wait_min = wait_min
        self.wait_max = wait_max

    def apply(self, region: str, resource_id: str) -> None:
        """
        Tag one resource, retrying the batched call a bounded number of times.

        CreateTags is idempotent, so a retry after a partial failure cannot
        leave a different tag state than a single successful call.

        Raises:
            TaggingError: If every attempt fails
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=1, min=self.wait_min, max=self.wait_max),
            retry=retry_if_exception_type(TaggingError),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        f"Retrying tags on {resource_id} (attempt {attempt.retry_state.attempt_number}/{self.attempts})"
                    )
                self.provider.tag_resources([resource_id], self.tags, region)
        logger.info(f"Tagged {resource_id} in {region}")

    def apply_all(self, region: str, resource_ids: List[str]) -> None:
        for resource_id in resource_ids:
            self.apply(region, resource_id)
