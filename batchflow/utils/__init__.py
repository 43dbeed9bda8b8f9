"""Utilities package for batchflow."""
