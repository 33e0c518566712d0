"""Parley: servers, direct messages and a public timeline with live fan-out."""

__version__ = "0.1.0"
