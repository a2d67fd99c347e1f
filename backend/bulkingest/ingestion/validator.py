"""Row validation: RawRecord -> CanonicalRecord, or None when invalid."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone

from bulkingest.db.models import CanonicalRecord

REQUIRED_FIELDS = ("id", "email")
OPTIONAL_FIELDS = ("firstname", "lastname", "email2", "profession")


def validate_record(
    raw: Mapping[str, str | None],
    now: datetime | None = None,
) -> CanonicalRecord | None:
    """Normalize one parsed row.

    Returns None if `id` or `email` is missing or empty. Other recognized
    fields default to "" and no value is trimmed or format-checked.
    `now` is the ingestion timestamp; defaults to the current UTC time.
    """
    if not all(raw.get(name) for name in REQUIRED_FIELDS):
        return None

    optional = {name: raw.get(name) or "" for name in OPTIONAL_FIELDS}
    return CanonicalRecord(
        id=raw["id"],
        email=raw["email"],
        created_at=now or datetime.now(timezone.utc),
        **optional,
    )
