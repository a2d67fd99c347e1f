"""Record shapes shared between the ingestion pipeline, the store and the API.

The validator turns each parsed CSV row into a CanonicalRecord, which is
what gets persisted.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CanonicalRecord(BaseModel):
    """A validated row, ready for insertion."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    firstname: str = ""
    lastname: str = ""
    email: str
    email2: str = ""
    profession: str = ""
    created_at: datetime = Field(alias="createdAt")

    def as_row(self) -> tuple[str, str, str, str, str, str, str]:
        """Column values in table order, timestamp as ISO 8601."""
        return (
            self.id,
            self.firstname,
            self.lastname,
            self.email,
            self.email2,
            self.profession,
            self.created_at.isoformat(),
        )
