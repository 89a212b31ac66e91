"""
Resource address conventions.

Follows pattern: {type}.{name} or {type}.{name}[{index}]
"""

import getpass
import os
import re
import socket

_ADDRESS_RE = re.compile(r"^(?P<type>[A-Za-z0-9_-]+)\.(?P<name>[A-Za-z0-9_-]+)(\[(?P<index>\d+)\])?$")


def format_address(resource_type: str, name: str, index: int | None = None) -> str:
    """
    Generate a node address.

    Args:
        resource_type: Resource type (e.g., 'subnet')
        name: Logical name (e.g., 'public')
        index: Count index for repeated declarations

    Returns:
        Formatted address, e.g. 'subnet.public[0]'
    """
    base = f"{resource_type}.{name}"
    return base if index is None else f"{base}[{index}]"


def parse_address(address: str) -> tuple[str, str, int | None]:
    """
    Split an address into type, name and index.

    Args:
        address: Address such as 'vpc.main' or 'subnet.public[1]'

    Returns:
        tuple[str, str, int | None]: (type, name, index)

    Raises:
        ValueError: If the address is malformed
    """
    match = _ADDRESS_RE.match(address)
    if not match:
        raise ValueError(f"Malformed resource address: {address!r}")
    index = match.group("index")
    return match.group("type"), match.group("name"), None if index is None else int(index)


def lock_owner() -> str:
    """
    Describe the current process for state lease records.

    Returns:
        Owner string in the form user@host:pid
    """
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return f"{user}@{socket.gethostname()}:{os.getpid()}"
