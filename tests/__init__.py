"""Tests for agent-relay."""
