"""
Configuration and data contracts for the run import system.

This package holds application settings and the Pydantic schemas exchanged
between the parser, the expiry calculator and the pick sequencer.
"""

__version__ = "1.0.0"
