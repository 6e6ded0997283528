"""Keep an embedded storage engine's files durable in an object store."""

__version__ = "0.1.0"
