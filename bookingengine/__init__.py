"""
Availability and pricing engine for a mobile massage booking business.
"""

__version__ = "0.1.0"
