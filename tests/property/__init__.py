"""Hypothesis property tests for kvds."""
