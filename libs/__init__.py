"""Shared libraries for the serving platform.

Subpackages:
- ``libs.common``: configuration, logging, metrics, and tracing.

Notes:
- Avoid service-specific logic; keep modules cohesive and broadly useful.
"""
