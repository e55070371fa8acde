"""Matching engine services."""
