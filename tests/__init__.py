"""Tests for specks."""
