"""Encoding, history and sync services."""
