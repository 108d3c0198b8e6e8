"""Loading of email backends from entry points."""

from importlib.metadata import entry_points
from typing import Any

from playmaster.inputs.email import EmailBackendManifest

ENTRY_POINT_GROUP = "playmaster.email_backends"


class EmailBackendNotFoundError(Exception):
    """Raised when an email backend is not found."""


def load_email_backend(key: str) -> EmailBackendManifest[Any]:
    """Load an email backend manifest by key.

    Args:
        key: The backend key as registered in pyproject.toml (e.g., "imap")

    Returns:
        The backend manifest instance

    Raises:
        EmailBackendNotFoundError: If no backend with the given key is found

    """
    entries = entry_points(group=ENTRY_POINT_GROUP)

    for entry in entries:
        if entry.name == key:
            manifest: EmailBackendManifest[Any] = entry.load()
            return manifest

    available = [e.name for e in entries]
    raise EmailBackendNotFoundError(
        f"Email backend '{key}' not found. Available backends: {available}"
    )
