"""cadence: completion detection and escalating retries for long-running external operations."""

__version__ = "0.1.0"
