"""workerctl: lifecycle manager for a sandbox worker daemon."""

__version__ = "1.0.0"
