"""CLI commands for managing stored API keys.

This module provides the ``keypool keys`` command group, the command-line
counterpart of the key-manager form: it creates entries with timestamp ids,
drops blank drafts before saving, and shows each key's validation status.

Commands:
    - list: Show stored keys (masked) with validity and the active marker
    - add: Store a new key
    - update: Rename a key or replace its secret
    - remove: Delete a key
    - activate: Set the active index
    - test: Validate every key against the Gemini API
    - next: Round-robin lookup of the next usable key
    - import: Replace the collection with a JSON array exported from the form
    - export: Print the collection as JSON

Example:
    Store, validate and rotate keys::

        $ keypool keys add AIzaSy... --name "Personal"
        $ keypool keys test
        $ keypool keys next
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
from pydantic import ValidationError

from keypool.config.settings import KeypoolSettings
from keypool.credentials import CredentialEntry, CredentialPatch, CredentialStore, new_entry, prune_drafts
from keypool.credentials.models import collection_adapter
from keypool.exceptions import KeypoolError
from keypool.utils.logging_config import mask_secret


def _store(ctx: click.Context) -> CredentialStore:
    settings: KeypoolSettings = ctx.obj["settings"]
    return CredentialStore.from_settings(settings)


def _fail(error: KeypoolError) -> NoReturn:
    click.echo(click.style(f"Error: {error.message}", fg="red"), err=True)
    suggestion = getattr(error, "suggestion", None)
    if suggestion:
        click.echo(click.style(f"Suggestion: {suggestion}", fg="yellow"), err=True)
    sys.exit(1)


def _status_label(entry: CredentialEntry) -> str:
    if entry.last_validated is True:
        return click.style("valid", fg="green")
    if entry.last_validated is False:
        return click.style("invalid", fg="red")
    return click.style("untested", fg="yellow")


@click.group(name="keys")
def keys_group() -> None:
    """Manage stored Gemini API keys.

    Examples:

        # Store a key
        keypool keys add AIzaSy... --name Personal

        # Check which keys work
        keypool keys test

        # Pick the next usable key
        keypool keys next
    """
    pass


@keys_group.command(name="list")
@click.pass_context
def list_keys(ctx: click.Context) -> None:
    """Show stored keys."""
    try:
        store = _store(ctx)
    except KeypoolError as e:
        _fail(e)

    entries = store.get_all()
    active_index = store.get_active_index()

    if store.get_environment_secret():
        click.echo(f"  env  Environment Key  {mask_secret(store.get_environment_secret())}")

    if not entries:
        click.echo("No API keys stored.")
        return

    for index, entry in enumerate(entries):
        marker = "*" if index == active_index else " "
        secret = mask_secret(entry.secret) or click.style("<empty>", dim=True)
        click.echo(f"{marker} {index:>3}  {entry.display_name}  {secret}  {_status_label(entry)}  (id: {entry.id})")


@keys_group.command(name="add")
@click.argument("secret")
@click.option("--name", "display_name", default=None, help="Display name (default: 'API Key N')")
@click.pass_context
def add_key(ctx: click.Context, secret: str, display_name: str | None) -> None:
    """Store a new key."""
    if not secret.strip():
        click.echo(click.style("Error: the key must not be empty", fg="red"), err=True)
        sys.exit(1)

    try:
        store = _store(ctx)
    except KeypoolError as e:
        _fail(e)

    entry = new_entry(position=len(store.get_all()), display_name=display_name, secret=secret.strip())
    store.add(entry)
    click.echo(click.style(f"Added {entry.display_name} (id: {entry.id})", fg="green"))


@keys_group.command(name="update")
@click.argument("key_id")
@click.option("--name", "display_name", default=None, help="New display name")
@click.option("--secret", default=None, help="New key value; resets the validation status")
@click.pass_context
def update_key(ctx: click.Context, key_id: str, display_name: str | None, secret: str | None) -> None:
    """Rename a key or replace its secret."""
    if display_name is None and secret is None:
        raise click.UsageError("Nothing to update: pass --name and/or --secret")

    try:
        store = _store(ctx)
    except KeypoolError as e:
        _fail(e)

    if not any(entry.id == key_id for entry in store.get_all()):
        click.echo(click.style(f"Key not found: {key_id}", fg="yellow"), err=True)
        sys.exit(1)

    fields: dict[str, Any] = {}
    if display_name is not None:
        fields["display_name"] = display_name
    if secret is not None:
        fields.update(secret=secret.strip(), last_validated=None, last_validated_at=None)

    store.update(key_id, CredentialPatch(**fields))
    click.echo(click.style(f"Updated {key_id}", fg="green"))


@keys_group.command(name="remove")
@click.argument("key_id")
@click.pass_context
def remove_key(ctx: click.Context, key_id: str) -> None:
    """Delete a key."""
    try:
        store = _store(ctx)
    except KeypoolError as e:
        _fail(e)

    if not any(entry.id == key_id for entry in store.get_all()):
        click.echo(click.style(f"Key not found: {key_id}", fg="yellow"), err=True)
        sys.exit(1)

    store.remove(key_id)
    click.echo(click.style(f"Removed {key_id}", fg="green"))


@keys_group.command(name="activate")
@click.argument("index", type=int)
@click.pass_context
def activate_key(ctx: click.Context, index: int) -> None:
    """Make the key at INDEX the preferred one."""
    try:
        store = _store(ctx)
    except KeypoolError as e:
        _fail(e)

    count = len(store.get_all())
    if not 0 <= index < count:
        click.echo(click.style(f"Error: index must be between 0 and {max(count - 1, 0)}", fg="red"), err=True)
        sys.exit(1)

    store.set_active_index(index)
    click.echo(click.style(f"Active key is now #{index}", fg="green"))


@keys_group.command(name="test")
@click.pass_context
def test_keys(ctx: click.Context) -> None:
    """Validate every stored key against the Gemini API."""
    try:
        store = _store(ctx)
    except KeypoolError as e:
        _fail(e)

    async def _run() -> list[CredentialEntry]:
        try:
            return await store.test_all()
        finally:
            await store.aclose()

    results = asyncio.run(_run())
    if not results:
        click.echo("No API keys stored.")
        return

    for index, entry in enumerate(results):
        click.echo(f"{index:>3}  {entry.display_name}  {mask_secret(entry.secret)}  {_status_label(entry)}")


@keys_group.command(name="next")
@click.option("--show-value", is_flag=True, help="Print the full key (default: masked)")
@click.pass_context
def next_key(ctx: click.Context, show_value: bool) -> None:
    """Pick the next usable key, starting from the active one."""
    try:
        store = _store(ctx)
    except KeypoolError as e:
        _fail(e)

    secret = store.next_valid()
    if secret is None:
        click.echo(click.style("No usable API key found", fg="yellow"), err=True)
        sys.exit(1)

    click.echo(secret if show_value else mask_secret(secret))


@keys_group.command(name="import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_keys(ctx: click.Context, source: Path) -> None:
    """Replace stored keys with a JSON array exported from the key form.

    Entries with a blank key are dropped.
    """
    try:
        entries = collection_adapter.validate_json(source.read_text(encoding="utf-8"))
    except ValidationError as e:
        message = f"Error: {source} is not a valid key list ({e.error_count()} errors)"
        click.echo(click.style(message, fg="red"), err=True)
        sys.exit(1)

    try:
        store = _store(ctx)
    except KeypoolError as e:
        _fail(e)

    kept = prune_drafts(entries)
    store.save_all(kept)
    click.echo(click.style(f"Imported {len(kept)} key(s), skipped {len(entries) - len(kept)} blank", fg="green"))


@keys_group.command(name="export")
@click.pass_context
def export_keys(ctx: click.Context) -> None:
    """Print stored keys as JSON (secrets included)."""
    try:
        store = _store(ctx)
    except KeypoolError as e:
        _fail(e)

    click.echo(json.dumps([entry.to_record() for entry in store.get_all()], indent=2, ensure_ascii=False))
