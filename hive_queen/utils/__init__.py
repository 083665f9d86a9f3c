"""Shared utilities: logging setup, transient-error classification, retry."""
