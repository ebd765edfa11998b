"""Concurrent report render tasks."""
