"""
Local placement lookup through the EC2 instance-metadata service.
"""

import logging
import os
from typing import Optional

import requests

from .config import METADATA_URL
from .errors import ResolutionError

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 21600


class MetadataClient:
    """Reads instance identity from the metadata endpoint (IMDSv2 with v1 fallback)."""

    def __init__(self, base_url: Optional[str] = None, timeout: float = 2.0):
        self.base_url = (base_url or os.environ.get("IMAGE_INSTANCE_METADATA_URL") or METADATA_URL).rstrip("/")
        self.timeout = timeout
        self._token: Optional[str] = None
        self._token_fetched = False

    def _get_token(self) -> Optional[str]:
        """Lazy IMDSv2 session token; None when only IMDSv1 is available."""
        if not self._token_fetched:
            self._token_fetched = True
            try:
                response = requests.put(
                    f"{self.base_url}/latest/api/token",
                    headers={"X-aws-ec2-metadata-token-ttl-seconds": str(TOKEN_TTL_SECONDS)},
                    timeout=self.timeout,
                )
                if response.status_code == 200 and response.text:
                    self._token = response.text.strip()
            except requests.exceptions.RequestException as e:
                logger.debug(f"IMDSv2 token request failed, falling back to IMDSv1: {e}")
        return self._token

    def get(self, path: str) -> Optional[str]:
        """
        Read one metadata value.

        Args:
            path: Path below /latest/meta-data/

        Returns:
            The value, or None if the endpoint is unreachable or empty
        """
        headers = {}
        token = self._get_token()
        if token:
            headers["X-aws-ec2-metadata-token"] = token

        try:
            response = requests.get(
                f"{self.base_url}/latest/meta-data/{path}",
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.debug(f"Metadata request for {path} failed: {e}")
            return None

        if response.status_code != 200:
            logger.debug(f"Metadata request for {path} returned {response.status_code}")
            return None

        return response.text.strip() or None

    def instance_id(self) -> str:
        instance_id = self.get("instance-id")
        if not instance_id:
            raise ResolutionError("cannot retrieve instance-id")
        return instance_id

    def availability_zone(self) -> str:
        zone = self.get("placement/availability-zone")
        if not zone:
            raise ResolutionError("cannot determine the availability zone of the local instance")
        return zone
