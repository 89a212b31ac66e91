"""
Declarative cloud-network resolver.

Expands variable and resource declarations into a dependency graph, applies it
idempotently against a network provider API, and tracks the result in a
persisted state snapshot.
"""

__version__ = "0.1.0"
