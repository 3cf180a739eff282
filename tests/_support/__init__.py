"""
Test support utilities for runguard tests.

Helpers that are plain functions rather than fixtures: timestamp and
snapshot builders shared across test modules.
"""
