"""
Passport — Telemetry

Structured logging setup.
"""

from passport.telemetry.logging import setup_logging

__all__ = ["setup_logging"]
