"""
Basic tests for request resolution, expiry parsing and instance metadata.
"""

from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest
import requests

from image_instance.config import normalize_timeout, region_from_zone, resolve_request
from image_instance.errors import ResolutionError
from image_instance.expiry import format_timestamp, parse_expiry
from image_instance.metadata import MetadataClient

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


class TestExpiry:
    """Test expiry expressions."""

    @pytest.mark.parametrize("expr,expected", [
        ("+1 week", datetime(2026, 10, 25, 12, 0, 0, tzinfo=timezone.utc)),
        ("+1 weeks", datetime(2026, 10, 25, 12, 0, 0, tzinfo=timezone.utc)),
        ("3 days", datetime(2026, 10, 21, 12, 0, 0, tzinfo=timezone.utc)),
        ("-2 hours", datetime(2026, 10, 18, 10, 0, 0, tzinfo=timezone.utc)),
        ("1 month ago", datetime(2026, 9, 18, 12, 0, 0, tzinfo=timezone.utc)),
        ("+1 fortnight", datetime(2026, 11, 1, 12, 0, 0, tzinfo=timezone.utc)),
        ("+1 year", datetime(2027, 10, 18, 12, 0, 0, tzinfo=timezone.utc)),
        ("tomorrow", datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)),
        ("2027-01-31", datetime(2027, 1, 31, 0, 0, 0, tzinfo=timezone.utc)),
        ("2027-01-31T08:30:00+02:00", datetime(2027, 1, 31, 6, 30, 0, tzinfo=timezone.utc)),
    ])
    def test_parse(self, expr, expected):
        assert parse_expiry(expr, NOW) == expected

    @pytest.mark.parametrize("expr", ["", "   ", "whenever", "+1 fortnights later"])
    def test_invalid(self, expr):
        with pytest.raises(ValueError):
            parse_expiry(expr, NOW)

    def test_partial_date_uses_base_year(self):
        base = datetime(2020, 1, 1, tzinfo=timezone.utc)
        assert parse_expiry("Dec 31", base) == datetime(2020, 12, 31, tzinfo=timezone.utc)
        assert parse_expiry("Dec 31 18:00", base) == datetime(2020, 12, 31, 18, 0, tzinfo=timezone.utc)

    def test_format_timestamp(self):
        assert format_timestamp(NOW) == "2026-10-18T12:00:00Z"
        assert format_timestamp(datetime(2026, 1, 2, 3, 4, 5, 678)) == "2026-01-02T03:04:05Z"


class TestConfig:
    """Test configuration helpers."""

    def test_normalize_timeout(self):
        assert normalize_timeout(None) == 28800
        assert normalize_timeout(0) == 28800
        assert normalize_timeout(-1) == 28800
        assert normalize_timeout(60) == 60

    def test_region_from_zone(self):
        assert region_from_zone("us-east-1a") == "us-east-1"
        assert region_from_zone("eu-west-3c\n") == "eu-west-3"

    def test_explicit_values_skip_metadata(self):
        metadata = Mock()
        request = resolve_request(instance_id="i-1", region="eu-west-1", timeout=0,
                                  metadata_client=metadata)

        metadata.instance_id.assert_not_called()
        metadata.availability_zone.assert_not_called()
        assert request.instance_id == "i-1"
        assert request.region == "eu-west-1"
        assert request.timeout == 28800
        assert request.expire is None
        assert request.dest_region is None

    def test_missing_values_from_metadata(self):
        metadata = Mock()
        metadata.instance_id.return_value = "i-local"
        metadata.availability_zone.return_value = "ap-south-1b"

        request = resolve_request(metadata_client=metadata, expire="+1 week", now=NOW)

        assert request.instance_id == "i-local"
        assert request.region == "ap-south-1"
        assert request.expire == "2026-10-25T12:00:00Z"

    def test_metadata_failure_propagates(self):
        metadata = Mock()
        metadata.instance_id.side_effect = ResolutionError("cannot retrieve instance-id")

        with pytest.raises(ResolutionError, match="instance-id"):
            resolve_request(region="us-east-1", metadata_client=metadata)

    def test_request_is_immutable(self):
        request = resolve_request(instance_id="i-1", region="us-east-1")
        with pytest.raises(Exception):
            request.region = "us-west-2"


def _response(status_code=200, text=""):
    response = Mock()
    response.status_code = status_code
    response.text = text
    return response


class TestMetadataClient:
    """Test instance-metadata lookups."""

    @patch("image_instance.metadata.requests.get")
    @patch("image_instance.metadata.requests.put")
    def test_imdsv2(self, mock_put, mock_get):
        mock_put.return_value = _response(200, "token-123")
        mock_get.side_effect = [_response(200, "i-0abc"), _response(200, "us-east-1d")]

        client = MetadataClient(base_url="http://meta")

        assert client.instance_id() == "i-0abc"
        assert client.availability_zone() == "us-east-1d"
        mock_put.assert_called_once()
        headers = mock_get.call_args.kwargs["headers"]
        assert headers["X-aws-ec2-metadata-token"] == "token-123"
        assert mock_get.call_args.args[0] == "http://meta/latest/meta-data/placement/availability-zone"

    @patch("image_instance.metadata.requests.get")
    @patch("image_instance.metadata.requests.put")
    def test_imdsv1_fallback(self, mock_put, mock_get):
        mock_put.side_effect = requests.exceptions.ConnectionError("refused")
        mock_get.return_value = _response(200, "i-0abc\n")

        assert MetadataClient(base_url="http://meta").instance_id() == "i-0abc"
        assert mock_get.call_args.kwargs["headers"] == {}

    @patch("image_instance.metadata.requests.get")
    @patch("image_instance.metadata.requests.put")
    def test_unreachable(self, mock_put, mock_get):
        mock_put.side_effect = requests.exceptions.Timeout("slow")
        mock_get.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(ResolutionError, match="cannot retrieve instance-id"):
            MetadataClient(base_url="http://meta").instance_id()

    @patch("image_instance.metadata.requests.get")
    @patch("image_instance.metadata.requests.put")
    def test_empty_zone(self, mock_put, mock_get):
        mock_put.return_value = _response(404, "")
        mock_get.return_value = _response(200, "")

        with pytest.raises(ResolutionError, match="availability zone"):
            MetadataClient(base_url="http://meta").availability_zone()
