"""
Application layer.

Wires configuration, boundaries and the resolve pipeline for each command.
"""

from infragraph.application.factory import build_backend, build_provider
from infragraph.application.run_service import RunReport, RunService

__all__ = ["RunReport", "RunService", "build_backend", "build_provider"]
