"""Loop Runner - drives an agent runtime through a repeating prompt cycle."""

__version__ = "0.1.0"
