"""
Domain Services Package

Architectural Intent:
- Pure logic shared by the deployment steps; no I/O
"""

from hoist.domain.services.command_builder import CommandBuilder

__all__ = ["CommandBuilder"]
