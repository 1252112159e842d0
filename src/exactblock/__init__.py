"""
exactblock: exact-host page blocking and per-domain element hiding.
"""

__version__ = "0.1.0"
