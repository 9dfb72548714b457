"""Utility modules for the task automation service."""
