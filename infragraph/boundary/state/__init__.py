"""
State storage boundary.

Exports: StateBackend, StateLease, LocalStateBackend, S3StateBackend
"""

from .base import StateBackend, StateLease
from .local import LocalStateBackend
from .s3 import S3StateBackend

__all__ = [
    "LocalStateBackend",
    "S3StateBackend",
    "StateBackend",
    "StateLease",
]
