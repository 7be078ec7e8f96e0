"""Shared utilities: clocks, id generation, timestamp formats."""
