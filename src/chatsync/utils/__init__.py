"""Shared utilities: logging, errors, configuration and display helpers."""
