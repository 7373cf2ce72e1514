"""Compose updater.

A small service that watches the images behind a Docker Compose stack,
compares registry digests against the running containers, and restarts
the stack when something changed. Updates are triggered by a timer, a
manual invocation, or a signed webhook, and never run concurrently.
"""

__version__ = "0.1.0"
