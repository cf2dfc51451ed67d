"""Example-based unit tests for kvds."""
