"""List synchronization layer for the therapy-booking admin dashboard."""

__version__ = "0.3.0"
