"""
Shared fakes for backup tests: an in-memory EC2 provider and a manual clock.
"""

from typing import Dict, List, Optional

import pytest

from image_instance.errors import CreationError, ResolutionError, TaggingError
from image_instance.models import BackupPhase, ImageDescription, InstanceDetails


class FakeClock:
    """Monotonic clock that only advances when slept on."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProvider:
    """
    Scripted provider. Each image has a list of observations; every
    describe_image call consumes one, and the last one repeats forever.
    """

    def __init__(self, volume_count: int = 1, display_name: str = "web", zone: str = "us-east-1a"):
        self.details = InstanceDetails(availability_zone=zone, display_name=display_name,
                                       volume_count=volume_count)
        self.scripts: Dict[str, List[ImageDescription]] = {}
        self.next_image_ids = ["ami-source", "ami-copy"]
        self.created: List[dict] = []
        self.copies: List[dict] = []
        self.tag_calls: List[tuple] = []
        self.tags: Dict[str, Dict[str, str]] = {}
        self.describe_calls: List[str] = []
        self.tag_failures = 0
        self.fail_resolve = False
        self.empty_create = False
        self.empty_copy = False

    def script(self, image_id: str, *observations: ImageDescription) -> None:
        self.scripts[image_id] = list(observations)

    def resolve_instance(self, instance_id: str, region: str) -> InstanceDetails:
        if self.fail_resolve:
            raise ResolutionError(f"instance {instance_id} not found in region {region}", instance_id)
        return self.details

    def create_image(self, instance_id, region, name, description) -> str:
        if self.empty_create:
            raise CreationError(f"failed to get the ami-id for {instance_id}", BackupPhase.CREATING, instance_id)
        image_id = self.next_image_ids.pop(0)
        self.created.append({"image_id": image_id, "instance_id": instance_id, "region": region,
                             "name": name, "description": description})
        return image_id

    def copy_image(self, source_region, source_image_id, dest_region, name, description) -> str:
        if self.empty_copy:
            raise CreationError(f"failed to copy AMI {source_image_id} to {dest_region}",
                                BackupPhase.COPYING, source_image_id)
        image_id = self.next_image_ids.pop(0)
        self.copies.append({"image_id": image_id, "source_region": source_region,
                            "source_image_id": source_image_id, "dest_region": dest_region,
                            "name": name, "description": description})
        return image_id

    def describe_image(self, image_id: str, region: str) -> ImageDescription:
        self.describe_calls.append(image_id)
        script = self.scripts.get(image_id) or [ImageDescription(state="pending")]
        if len(script) > 1:
            return script.pop(0)
        return script[0]

    def tag_resources(self, resource_ids: List[str], tags: Dict[str, str], region: str) -> None:
        self.tag_calls.append((list(resource_ids), dict(tags), region))
        if self.tag_failures > 0:
            self.tag_failures -= 1
            raise TaggingError(f"failed to tag {', '.join(resource_ids)} in {region}",
                               resource_id=resource_ids[0])
        for resource_id in resource_ids:
            self.tags.setdefault(resource_id, {}).update(tags)

    def tagged_ids(self) -> List[str]:
        return [ids[0] for ids, _, _ in self.tag_calls]


def _available(*snapshot_ids: Optional[str]) -> ImageDescription:
    return ImageDescription(state="available", snapshot_ids=list(snapshot_ids))


def _pending(*snapshot_ids: Optional[str]) -> ImageDescription:
    return ImageDescription(state="pending", snapshot_ids=list(snapshot_ids))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_provider():
    """Factory for scripted providers: make_provider(volume_count=2, ...)."""
    return FakeProvider


@pytest.fixture
def available():
    return _available


@pytest.fixture
def pending():
    return _pending
