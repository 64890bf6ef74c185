"""
Commerce Ops Analytics
"""

__version__ = "1.0.0"
