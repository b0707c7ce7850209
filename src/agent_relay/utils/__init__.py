"""Utility helpers for the agent relay daemon."""
