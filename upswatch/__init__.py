"""
upswatch: real-time reconciliation client for a UPS monitoring backend.
"""

__version__ = "0.1.0"
