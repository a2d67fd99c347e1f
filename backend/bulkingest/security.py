"""File permission helpers for uploaded data.

Uploaded CSVs carry personal data (names, e-mail addresses). The data and
upload directories, the database file and every stored upload are kept
owner-only.
"""

import os
from pathlib import Path


def secure_directory(path: Path, mode: int = 0o700) -> None:
    """Create directory with restrictive permissions. Creates parent dirs if needed."""
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, mode)


def secure_file(path: Path, mode: int = 0o600) -> None:
    """Set restrictive permissions on a file."""
    if path.exists():
        os.chmod(path, mode)
