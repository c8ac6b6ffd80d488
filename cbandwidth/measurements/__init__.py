"""Probe execution and result parsing."""
