"""
Run configuration: defaults and the one-off resolution of a BackupRequest.

This is the only module that reads the environment (instance metadata,
wall clock for the expiry base). Everything downstream receives the
resulting immutable BackupRequest.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from .models import BackupRequest

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 28800  # 8h
DEFAULT_POLL_INTERVAL = 15
DEFAULT_TAG_ATTEMPTS = 3
CREATOR = "image-instance"
NAME_PREFIX = "backup-ami@"
METADATA_URL = "http://169.254.169.254"


def normalize_timeout(value: Optional[int]) -> int:
    """
    Return a usable timeout in seconds.
    
    Operations in AWS rarely complete within the same second, so a missing,
    zero or negative value falls back to the default instead of disabling
    the wait.
    """
    if value is None or value < 1:
        return DEFAULT_TIMEOUT
    return int(value)


def normalize_interval(value: Optional[int]) -> int:
    if value is None or value < 1:
        return DEFAULT_POLL_INTERVAL
    return int(value)


def region_from_zone(availability_zone: str) -> str:
    """
    Derive the region from an availability zone name (us-east-1a -> us-east-1).
    
    Args:
        availability_zone: Availability zone name
        
    Returns:
        Region name
    """
    return availability_zone.strip()[:-1]


def resolve_request(
    instance_id: Optional[str] = None,
    region: Optional[str] = None,
    dest_region: Optional[str] = None,
    expire: Optional[str] = None,
    timeout: Optional[int] = None,
    poll_interval: Optional[int] = None,
    profile: Optional[str] = None,
    tag_attempts: int = DEFAULT_TAG_ATTEMPTS,
    metadata_client=None,
    now: Optional[datetime] = None,
) -> BackupRequest:
    """
    Build the immutable request for a run.
    
    The instance id and region default to the local instance as reported by
    the instance-metadata service.
    
    Args:
        instance_id: Instance to back up (default: local instance)
        region: Region of the instance (default: derived from local zone)
        dest_region: Region to copy the image to, if any
        expire: Expiry expression, absolute or relative ('+1 week')
        timeout: Per-wait ceiling in seconds
        poll_interval: Seconds between polls
        profile: AWS credentials profile
        tag_attempts: Attempts per tagging call
        metadata_client: Instance-metadata client (default: MetadataClient())
        now: Base time for relative expiry expressions
        
    Returns:
        BackupRequest
        
    Raises:
        ResolutionError: If the local placement cannot be determined
        ValueError: If the expiry expression is invalid
    """
    from .expiry import format_timestamp, parse_expiry
    from .metadata import MetadataClient

    if not instance_id or not region:
        client = metadata_client or MetadataClient()
        if not instance_id:
            instance_id = client.instance_id()
        if not region:
            region = region_from_zone(client.availability_zone())
            logger.info(f"Using region {region} from instance metadata")

    expire_value = None
    if expire:
        now = now or datetime.now(timezone.utc)
        expire_value = format_timestamp(parse_expiry(expire, now))

    return BackupRequest(
        instance_id=instance_id,
        region=region,
        dest_region=dest_region or None,
        expire=expire_value,
        timeout=normalize_timeout(timeout),
        poll_interval=normalize_interval(poll_interval),
        profile=profile or None,
        tag_attempts=max(1, tag_attempts),
    )
