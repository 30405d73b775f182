"""Streaming tool-use orchestration core."""
