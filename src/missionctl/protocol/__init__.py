"""Shared data model and file helpers."""
