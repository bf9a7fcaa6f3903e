"""
EC2 provider client: the boto3 calls a backup run needs.
"""

import logging
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import BackupError, CreationError, ResolutionError, TaggingError
from .models import BackupPhase, ImageDescription, InstanceDetails
from .tags import from_aws_tags, to_aws_tags

logger = logging.getLogger(__name__)

_IMAGE_NOT_FOUND = ("InvalidAMIID.NotFound", "InvalidAMIID.Unavailable")


class Ec2Provider:
    """Thin wrapper over one EC2 client per region, sharing a credentials profile."""

    def __init__(self, profile: Optional[str] = None, session=None):
        self.profile = profile
        if session is None:
            try:
                session = boto3.Session(profile_name=profile)
            except BotoCoreError as e:
                raise ResolutionError(f"cannot load AWS profile {profile!r}: {e}") from e
        self.session = session
        self._clients: Dict[str, object] = {}

    def client(self, region: str):
        """Lazy initialization of the EC2 client for a region."""
        if region not in self._clients:
            self._clients[region] = self.session.client("ec2", region_name=region)
        return self._clients[region]

    def resolve_instance(self, instance_id: str, region: str) -> InstanceDetails:
        """
        Describe the source instance.

        Args:
            instance_id: Instance ID
            region: Region the instance lives in

        Returns:
            Availability zone, display name (Name tag, or the id) and EBS volume count

        Raises:
            ResolutionError: If the instance cannot be described
        """
        try:
            response = self.client(region).describe_instances(InstanceIds=[instance_id])
        except (ClientError, BotoCoreError) as e:
            raise ResolutionError(
                f"cannot describe instance {instance_id} in region {region}: {e}", instance_id
            ) from e

        instances = [
            instance
            for reservation in response.get("Reservations", [])
            for instance in reservation.get("Instances", [])
        ]
        if not instances:
            raise ResolutionError(f"instance {instance_id} not found in region {region}", instance_id)

        instance = instances[0]
        zone = instance.get("Placement", {}).get("AvailabilityZone")
        if not zone:
            raise ResolutionError(
                f"cannot determine the availability zone for instance {instance_id} in region {region}",
                instance_id,
            )

        tags = from_aws_tags(instance.get("Tags"))
        volume_count = sum(
            1 for mapping in instance.get("BlockDeviceMappings", [])
            if mapping.get("Ebs", {}).get("VolumeId")
        )

        return InstanceDetails(
            availability_zone=zone,
            display_name=tags.get("Name") or instance_id,
            volume_count=volume_count,
        )

    def create_image(self, instance_id: str, region: str, name: str, description: str) -> str:
        """Create an AMI without rebooting the instance; returns the image id."""
        try:
            response = self.client(region).create_image(
                InstanceId=instance_id,
                Name=name,
                Description=description,
                NoReboot=True,
            )
        except (ClientError, BotoCoreError) as e:
            raise CreationError(
                f"failed to create an ami for {instance_id}: {e}", BackupPhase.CREATING, instance_id
            ) from e

        image_id = response.get("ImageId")
        if not image_id:
            raise CreationError(f"failed to get the ami-id for {instance_id}", BackupPhase.CREATING, instance_id)
        return image_id

    def describe_image(self, image_id: str, region: str) -> ImageDescription:
        """
        Observe an image's state and snapshot slots.

        Freshly created images can be briefly unknown to DescribeImages; they
        are reported as pending with no snapshots.
        """
        try:
            response = self.client(region).describe_images(ImageIds=[image_id])
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _IMAGE_NOT_FOUND:
                logger.debug(f"Image {image_id} not visible in {region} yet")
                return ImageDescription(state="pending", snapshot_ids=[])
            raise BackupError(f"failed to describe ami {image_id} in {region}: {e}", resource_id=image_id) from e
        except BotoCoreError as e:
            raise BackupError(f"failed to describe ami {image_id} in {region}: {e}", resource_id=image_id) from e

        images = response.get("Images", [])
        if not images:
            return ImageDescription(state="pending", snapshot_ids=[])

        image = images[0]
        snapshot_ids: List[Optional[str]] = [
            mapping.get("Ebs", {}).get("SnapshotId")
            for mapping in image.get("BlockDeviceMappings", [])
        ]
        return ImageDescription(state=image.get("State"), snapshot_ids=snapshot_ids)

    def copy_image(self, source_region: str, source_image_id: str, dest_region: str,
                   name: str, description: str) -> str:
        """Copy an AMI into another region; returns the new image id."""
        try:
            response = self.client(dest_region).copy_image(
                SourceRegion=source_region,
                SourceImageId=source_image_id,
                Name=name,
                Description=description,
            )
        except (ClientError, BotoCoreError) as e:
            raise CreationError(
                f"failed to copy AMI {source_image_id} to {dest_region}: {e}",
                BackupPhase.COPYING,
                source_image_id,
            ) from e

        image_id = response.get("ImageId")
        if not image_id:
            raise CreationError(
                f"failed to copy AMI {source_image_id} to {dest_region}", BackupPhase.COPYING, source_image_id
            )
        return image_id

    def tag_resources(self, resource_ids: List[str], tags: Dict[str, str], region: str) -> None:
        """
        Apply all tags to the resources in one CreateTags call.

        Raises:
            TaggingError: If the call fails
        """
        try:
            self.client(region).create_tags(Resources=list(resource_ids), Tags=to_aws_tags(tags))
        except (ClientError, BotoCoreError) as e:
            raise TaggingError(
                f"failed to tag {', '.join(resource_ids)} in {region}: {e}",
                resource_id=resource_ids[0] if resource_ids else None,
            ) from e
