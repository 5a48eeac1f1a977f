"""
formulary — tap toolkit for pre-built binary formulae.
"""

__version__ = "0.4.0"
