"""Acknowledgement portal API."""
