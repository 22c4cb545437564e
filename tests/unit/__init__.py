# tests/unit/__init__.py
"""
Unit tests for the signal wizard.

Unit tests focus on testing individual functions, classes, and modules
in isolation from external dependencies like the signals API.
"""
