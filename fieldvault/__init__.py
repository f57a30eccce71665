"""
fieldvault - field-level encryption and blind indexes for sensitive record fields.
"""

__version__ = "1.0.0"
