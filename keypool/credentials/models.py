"""Credential records persisted by the CredentialStore.

Records are serialized with the field names the key-manager form uses
(``id``, ``secret``, ``displayName``, ``isValid``, ``lastTested``). Records
written by older builds of the web app (``key``, ``name``, ``lastTested`` as
epoch milliseconds) load as well.
"""

import time
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter


class CredentialEntry(BaseModel):
    """One named API key with its cached validation result.

    ``last_validated`` is advisory: None means never tested, not invalid.
    """

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: str = Field(..., description="Caller-generated identifier, immutable once created")
    secret: str = Field(
        default="",
        validation_alias=AliasChoices("secret", "key"),
        serialization_alias="secret",
    )
    display_name: str = Field(
        default="",
        validation_alias=AliasChoices("displayName", "display_name", "name"),
        serialization_alias="displayName",
    )
    last_validated: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("isValid", "last_validated", "lastValidated"),
        serialization_alias="isValid",
    )
    last_validated_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("lastTested", "last_validated_at", "lastValidatedAt"),
        serialization_alias="lastTested",
    )

    @property
    def has_secret(self) -> bool:
        return bool(self.secret.strip())

    def to_record(self) -> dict[str, Any]:
        """JSON-compatible record in the form's field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CredentialPatch(BaseModel):
    """Partial update for a CredentialEntry.

    Only fields explicitly set are merged; ``id`` is not patchable and is
    ignored if present.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    secret: str | None = Field(default=None, validation_alias=AliasChoices("secret", "key"))
    display_name: str | None = Field(
        default=None, validation_alias=AliasChoices("displayName", "display_name", "name")
    )
    last_validated: bool | None = Field(
        default=None, validation_alias=AliasChoices("isValid", "last_validated", "lastValidated")
    )
    last_validated_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("lastTested", "last_validated_at", "lastValidatedAt")
    )

    def apply(self, entry: CredentialEntry) -> CredentialEntry:
        """Return a copy of ``entry`` with the set fields replaced."""
        return entry.model_copy(update=self.model_dump(exclude_unset=True))


CredentialCollection = list[CredentialEntry]

collection_adapter: TypeAdapter[list[CredentialEntry]] = TypeAdapter(list[CredentialEntry])


def new_entry(position: int = 0, display_name: str | None = None, secret: str = "") -> CredentialEntry:
    """Create a draft entry with a timestamp-based id.

    Args:
        position: Number of entries already in the list; used for the default name
        display_name: Explicit name, defaults to ``API Key <position + 1>``
        secret: Initial secret, empty for a draft
    """
    return CredentialEntry(
        id=str(time.time_ns() // 1_000_000),
        secret=secret,
        display_name=display_name or f"API Key {position + 1}",
    )


def prune_drafts(entries: Iterable[CredentialEntry]) -> CredentialCollection:
    """Drop entries whose secret is blank, as done when the key form is saved."""
    return [entry for entry in entries if entry.has_secret]
