"""
image-instance - point-in-time AMI backups of a running EC2 instance.

This package snapshots an instance's EBS volumes into an AMI, optionally
copies the AMI to a second region, and tags the images and every snapshot
with provenance and expiry metadata.
"""

__version__ = "0.1.0"
__author__ = "image-instance maintainers"
