"""Shared utilities: configuration and clocks."""
