"""Segment rule engine for CRM audience targeting."""

__version__ = "0.1.0"
