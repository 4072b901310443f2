"""
Service layer for the run import system.

This package contains framework-agnostic business logic (workbook parsing,
expiry calculation, pick sequencing and persistence) that can be used
by the CLI or any other interface.
"""

__version__ = "1.0.0"
