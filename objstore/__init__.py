"""Async adapter for bucket and object operations on Amazon S3."""

__version__ = "0.1.0"
