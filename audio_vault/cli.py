"""
Command-line interface for audio-vault.

This module implements the CLI using Click, wiring the engine together:
credential manager, resilient client, vault and restore reconciler.
rich-click is used for the output colors.

Commands:
    vault login                         Authorize with Spotify (PKCE)
    vault logout                        Forget stored credentials
    vault status                        Show authentication state
    vault export [-o FILE] [--plain]    Export the library (encrypted by default)
    vault restore FILE [--no-reuse]     Replay a backup into the current account
    vault encrypt PLAIN.json OUT        Encrypt a plain backup file
    vault decrypt BUNDLE.json OUT       Decrypt an encrypted backup file

Global Options:
    --config <path>                     Explicit config.yaml
    --verbose                           Show DEBUG messages

Passphrases:
    Prompted with hidden input, or read from AUDIO_VAULT_PASSPHRASE.
    They are never echoed or logged.

Exit Codes:
    0    Success
    1    Configuration error / unexpected error
    2    Authentication error (log in again)
    3    Spotify API error
    4    Backup error (passphrase, decryption, payload)
    130  Interrupted by user
"""

import os
import sys
from pathlib import Path
from typing import Callable, Optional

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.MAX_WIDTH = 100

from audio_vault import __version__
from audio_vault.backup import (
    BackupPayload,
    EncryptedBundle,
    RestoreReconciler,
    check_passphrase,
    decrypt_payload,
    default_artifact_name,
    encrypt_payload,
    export_library,
    read_artifact,
    write_bundle,
    write_payload,
)
from audio_vault.core import (
    AudioVaultError,
    AuthorizationDenied,
    Config,
    ConfigError,
    DecryptionFailed,
    FileTokenStore,
    MalformedPayload,
    NotAuthenticated,
    RateLimited,
    RemoteRequestFailed,
    RichProgressObserver,
    ServerError,
    SessionExpired,
    StateMismatch,
    WeakPassphrase,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from audio_vault.spotify import (
    CredentialManager,
    LibraryApi,
    RedirectReceiver,
    SpotifyClient,
    is_loopback_redirect,
)

logger = get_logger(__name__)

PASSPHRASE_ENV = "AUDIO_VAULT_PASSPHRASE"

AUTH_ERRORS = (NotAuthenticated, SessionExpired, AuthorizationDenied, StateMismatch)
REMOTE_ERRORS = (RateLimited, ServerError, RemoteRequestFailed)
BACKUP_ERRORS = (WeakPassphrase, DecryptionFailed, MalformedPayload)


@click.group()
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Path to the configuration file"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show debug messages"
)
@click.version_option(__version__, prog_name="audio-vault")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool) -> None:
    """
    audio-vault: back up and restore your Spotify library.

    \b
    BASIC USAGE:
        vault login                           # Authorize once
        vault export                          # Encrypted backup in the current directory
        vault restore backup.vault.json       # Replay it (no duplicate playlists)

    \b
    OFFLINE:
        vault encrypt plain.json backup.vault.json
        vault decrypt backup.vault.json plain.json
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


# =============================================================================
# Commands
# =============================================================================

@cli.command()
@click.option("--no-browser", is_flag=True, help="Print the authorization URL instead of opening it")
@click.option("--timeout", type=int, default=300, show_default=True, help="Seconds to wait for the redirect")
@click.pass_context
def login(ctx: click.Context, no_browser: bool, timeout: int) -> None:
    """Authorize audio-vault with your Spotify account."""

    def run(config: Config) -> None:
        manager = _credential_manager(config)
        redirect_uri = config.spotify.redirect_uri

        if redirect_uri and is_loopback_redirect(redirect_uri):
            with RedirectReceiver(redirect_uri) as receiver:
                url = manager.begin_login(open_browser=not no_browser)
                click.echo("Opening browser for Spotify authorization...")
                click.echo(f"If the browser doesn't open, visit:\n{url}")
                redirected = receiver.wait(timeout=timeout)
        else:
            url = manager.begin_login(open_browser=not no_browser)
            click.echo(f"Visit this URL to authorize audio-vault:\n{url}")
            redirected = click.prompt("Paste the URL you were redirected to").strip()

        if manager.complete_login_from_redirect(redirected) is None:
            raise click.ClickException("That URL is not a Spotify authorization redirect.")

        click.secho("Logged in to Spotify.", fg="green")

    _run(ctx, run)


@cli.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Forget stored Spotify credentials."""

    def run(config: Config) -> None:
        _credential_manager(config).logout()
        click.echo("Logged out.")

    _run(ctx, run)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show whether a usable Spotify credential is stored."""

    def run(config: Config) -> None:
        manager = _credential_manager(config)
        record = manager.current_record()
        if record is None:
            click.echo("Not logged in.")
            return

        if manager.is_authenticated():
            click.secho("Logged in.", fg="green")
        else:
            click.secho("Access token expired.", fg="yellow")

        click.echo(f"Scopes:        {record.scope or '(none reported)'}")
        click.echo(f"Refreshable:   {'yes' if record.refresh_token else 'no'}")
        click.echo(f"Token file:    {config.storage.token_file}")

    _run(ctx, run)


@cli.command()
@click.option(
    "--output", "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Output file (default: generated name in the current directory)"
)
@click.option("--plain", is_flag=True, help="Write the payload unencrypted")
@click.pass_context
def export(ctx: click.Context, output: Optional[Path], plain: bool) -> None:
    """Export the library to a backup file."""

    def run(config: Config) -> None:
        library = _library(config)

        passphrase = None
        if not plain:
            passphrase = _passphrase(confirm=True)
            check_passphrase(passphrase)

        with RichProgressObserver("Exporting") as observer:
            payload = export_library(library, observer=observer)

        path = output or Path.cwd() / default_artifact_name(payload.account.id, encrypted=not plain)
        if plain:
            write_payload(payload, path)
        else:
            write_bundle(encrypt_payload(payload, passphrase), path)

        _print_payload_stats(payload)
        click.secho(f"Backup written to {path}", fg="green")

    _run(ctx, run)


@cli.command()
@click.argument("artifact", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--no-reuse", is_flag=True, help="Always create new playlists")
@click.pass_context
def restore(ctx: click.Context, artifact: Path, no_reuse: bool) -> None:
    """Replay a backup file into the current Spotify account."""

    def run(config: Config) -> None:
        payload = _load_payload(artifact)
        library = _library(config)

        with RichProgressObserver("Restoring") as observer:
            summary = RestoreReconciler(library).restore(
                payload, reuse_existing=not no_reuse, observer=observer
            )

        logger.info("=" * 60)
        logger.info("RESTORE SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Liked songs:        {summary.liked_restored}")
        logger.info(f"Playlists created:  {summary.created_playlists}")
        logger.info(f"Playlists reused:   {summary.reused_playlists}")
        logger.info(f"Tracks added:       {summary.tracks_added}")
        logger.info("=" * 60)

    _run(ctx, run)


@cli.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("destination", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def encrypt(ctx: click.Context, source: Path, destination: Path) -> None:
    """Encrypt a plain backup file."""

    def run(config: Config) -> None:
        artifact = read_artifact(source)
        if isinstance(artifact, EncryptedBundle):
            raise click.ClickException(f"{source} is already encrypted.")
        write_bundle(encrypt_payload(artifact, _passphrase(confirm=True)), destination)
        click.secho(f"Encrypted backup written to {destination}", fg="green")

    _run(ctx, run)


@cli.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("destination", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def decrypt(ctx: click.Context, source: Path, destination: Path) -> None:
    """Decrypt an encrypted backup file."""

    def run(config: Config) -> None:
        artifact = read_artifact(source)
        if isinstance(artifact, BackupPayload):
            raise click.ClickException(f"{source} is not encrypted.")
        write_payload(decrypt_payload(artifact, _passphrase(confirm=False)), destination)
        click.secho(f"Plain backup written to {destination}", fg="green")

    _run(ctx, run)


# =============================================================================
# Helpers
# =============================================================================

def _run(ctx: click.Context, command: Callable[[Config], None]) -> None:
    """
    Load configuration, set up logging and run a command with uniform error reporting.

    Every engine error ends the command with a single red line and an
    exit code from the table in the module docstring.
    """
    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"Configuration error: {e.message}", fg="red", err=True)
        sys.exit(1)

    setup_logging(config.storage.log_directory, verbose=ctx.obj.get("verbose", False))

    try:
        command(config)

    except ConfigError as e:
        click.secho(f"Configuration error: {e.message}", fg="red", err=True)
        sys.exit(1)

    except AUTH_ERRORS as e:
        click.secho(f"Authentication error: {e.message}", fg="red", err=True)
        logger.debug(f"Details: {e.details}")
        sys.exit(2)

    except REMOTE_ERRORS as e:
        click.secho(f"Spotify error: {e.message}", fg="red", err=True)
        logger.error(f"Spotify error: {e.message}", exc_info=True)
        sys.exit(3)

    except BACKUP_ERRORS as e:
        click.secho(f"Backup error: {e.message}", fg="red", err=True)
        sys.exit(4)

    except AudioVaultError as e:
        click.secho(f"Error: {e.message}", fg="red", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except TimeoutError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(2)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    finally:
        shutdown_logging()


def _credential_manager(config: Config) -> CredentialManager:
    return CredentialManager(
        FileTokenStore(config.storage.token_file),
        config.spotify,
        timeout=config.network.request_timeout,
    )


def _library(config: Config) -> LibraryApi:
    client = SpotifyClient(
        _credential_manager(config),
        timeout=config.network.request_timeout,
        max_attempts=config.network.max_attempts,
        rate_limit_delay=config.network.rate_limit_delay,
        backoff_step=config.network.backoff_step,
    )
    return LibraryApi(client)


def _passphrase(confirm: bool) -> str:
    from_env = os.environ.get(PASSPHRASE_ENV)
    if from_env:
        return from_env
    return click.prompt("Passphrase", hide_input=True, confirmation_prompt=confirm)


def _load_payload(path: Path) -> BackupPayload:
    artifact = read_artifact(path)
    if isinstance(artifact, EncryptedBundle):
        return decrypt_payload(artifact, _passphrase(confirm=False))
    return artifact


def _print_payload_stats(payload: BackupPayload) -> None:
    summary = payload.summary
    logger.info("=" * 60)
    logger.info("EXPORT SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Liked songs:       {summary['likedSongs']}")
    logger.info(f"Playlists:         {summary['playlists']}")
    logger.info(f"Playlist tracks:   {summary['playlistTracks']}")
    logger.info(f"Saved albums:      {summary['savedAlbums']}")
    logger.info(f"Followed artists:  {summary['followedArtists']}")
    logger.info("=" * 60)


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `vault` from the command line.
    """
    cli()


if __name__ == "__main__":
    main()
