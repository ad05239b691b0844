"""relctl - release-based deployment and rollback for a service tree."""

__version__ = "0.3.0"
