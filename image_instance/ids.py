"""
Image naming utilities.
"""

import re

from .config import NAME_PREFIX

_DISALLOWED = re.compile(r"[^A-Za-z0-9()./_-]")


def sanitize(value: str) -> str:
    """
    Strip every character EC2 image names should not carry.
    
    Disallowed characters are removed, never substituted, so two display
    names differing only in punctuation produce the same stem.
    
    Args:
        value: Raw text, usually an instance's Name tag
        
    Returns:
        str: ``value`` restricted to ``[A-Za-z0-9()./_-]``
    """
    return _DISALLOWED.sub("", value)


def image_name(display_name: str, timestamp: int) -> str:
    """
    Generate the AMI name for a backup in format: backup-ami@<name>-<unix ts>
    
    Args:
        display_name: Instance display name
        timestamp: Creation time in seconds since the epoch
        
    Returns:
        str: Image name
    """
    return f"{NAME_PREFIX}{sanitize(display_name)}-{int(timestamp)}"


def image_description(display_name: str) -> str:
    return f"backup-ami for {display_name}"
