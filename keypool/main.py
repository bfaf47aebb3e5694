"""CLI entry point for keypool."""

import asyncio
import base64
import sys
from pathlib import Path

import click
import structlog

from keypool.cli.keys import keys_group
from keypool.config.settings import KeypoolSettings
from keypool.credentials import CredentialStore
from keypool.exceptions import AllCredentialsExhaustedError, ConfigurationError, KeypoolError
from keypool.failover import FailoverInvoker
from keypool.providers.gemini import IMAGEN_ASPECT_RATIOS, GeminiClient
from keypool.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


def load_settings(config: str | None) -> KeypoolSettings:
    """Settings from a YAML file when given, otherwise from the environment.

    Raises:
        ConfigurationError: If the settings are invalid
    """
    if config:
        return KeypoolSettings.from_yaml(config)
    try:
        return KeypoolSettings()
    except Exception as e:
        raise ConfigurationError(f"Invalid environment configuration: {e}") from e


@click.group()
@click.option(
    "--config",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    envvar="KEYPOOL_CONFIG",
    help="Path to a YAML configuration file",
)
@click.option("--log-level", default="WARNING", help="Logging level")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, log_level: str, json_logs: bool) -> None:
    """keypool: multi-key failover for the Gemini API."""
    configure_logging(log_level, json_output=json_logs, stream=sys.stderr, cache_loggers=False)

    try:
        settings = load_settings(str(config) if config else None)
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


cli.add_command(keys_group)


@cli.command()
@click.argument("prompt")
@click.option("--model", default=None, help="Model to use (default: provider.default_model)")
@click.pass_context
def generate(ctx: click.Context, prompt: str, model: str | None) -> None:
    """Generate text for PROMPT, failing over across stored keys."""
    settings: KeypoolSettings = ctx.obj["settings"]

    try:
        text = asyncio.run(_generate(settings, prompt, model or settings.provider.default_model))
    except AllCredentialsExhaustedError as e:
        click.echo(click.style(f"Error: {e.user_message}", fg="red"), err=True)
        log.debug("generate_failed", category=e.category, error=str(e.last_error))
        sys.exit(1)
    except KeypoolError as e:
        click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)

    click.echo(text)


async def _generate(settings: KeypoolSettings, prompt: str, model: str) -> str:
    store = CredentialStore.from_settings(settings)
    client = GeminiClient.from_config(settings.provider)
    invoker = FailoverInvoker(store, locale=settings.locale)

    try:
        return await invoker.invoke(lambda api_key: client.generate_text(api_key, model, prompt))
    finally:
        await client.aclose()
        await store.aclose()


@cli.command()
@click.argument("prompt")
@click.option("--count", "-n", type=click.IntRange(1, 4), default=1, help="Number of images")
@click.option(
    "--aspect-ratio",
    type=click.Choice(IMAGEN_ASPECT_RATIOS),
    default="1:1",
    help="Aspect ratio of the generated images",
)
@click.option("--negative-prompt", default=None, help="What the images should not contain")
@click.option("--model", default=None, help="Imagen model (default: provider.image_model)")
@click.option(
    "--out-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    help="Directory the JPEG files are written to",
)
@click.pass_context
def imagine(
    ctx: click.Context,
    prompt: str,
    count: int,
    aspect_ratio: str,
    negative_prompt: str | None,
    model: str | None,
    out_dir: Path,
) -> None:
    """Generate images for PROMPT with Imagen and save them as JPEG files."""
    settings: KeypoolSettings = ctx.obj["settings"]

    try:
        images = asyncio.run(
            _imagine(settings, prompt, count, aspect_ratio, negative_prompt, model or settings.provider.image_model)
        )
    except AllCredentialsExhaustedError as e:
        click.echo(click.style(f"Error: {e.user_message}", fg="red"), err=True)
        log.debug("imagine_failed", category=e.category, error=str(e.last_error))
        sys.exit(1)
    except KeypoolError as e:
        click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)

    out_dir.mkdir(parents=True, exist_ok=True)
    for number, image in enumerate(images, start=1):
        path = out_dir / f"imagen-{number}.jpg"
        path.write_bytes(base64.b64decode(image.partition(",")[2]))
        click.echo(str(path))


async def _imagine(
    settings: KeypoolSettings,
    prompt: str,
    count: int,
    aspect_ratio: str,
    negative_prompt: str | None,
    model: str,
) -> list[str]:
    store = CredentialStore.from_settings(settings)
    client = GeminiClient.from_config(settings.provider)
    invoker = FailoverInvoker(store, locale=settings.locale)

    try:
        return await invoker.invoke(
            lambda api_key: client.generate_imagen(api_key, prompt, count, aspect_ratio, negative_prompt, model=model)
        )
    finally:
        await client.aclose()
        await store.aclose()


if __name__ == "__main__":
    cli()
