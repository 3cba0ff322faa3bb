"""
FastAPI application for the sheet computation core.

This package contains the REST API exposing formula evaluation,
dependency analysis and fill-down prediction over grid snapshots.
"""

__version__ = "1.0.0"
