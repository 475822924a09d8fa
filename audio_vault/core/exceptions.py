"""
Exception classes for audio-vault.

This module defines all custom exceptions used throughout the engine.
Each exception carries a human-readable message plus an optional details
dictionary, and each maps to exactly one failure mode so callers can
decide whether to retry, re-authenticate, or give up.

Exception Hierarchy:
    AudioVaultError (base)
        ConfigError - Configuration file issues
            ConfigurationMissing - Client id / redirect URI not configured
        AuthorizationDenied - The provider returned an error on the redirect
        StateMismatch - Anti-CSRF state check failed on the redirect
        NotAuthenticated - No credential record stored
        SessionExpired - Credential unusable (401, refresh failed, no refresh token)
        RateLimited - 429 persisted past the retry bound
        ServerError - 5xx / transport failure persisted past the retry bound
        RemoteRequestFailed - Any other non-2xx response (never retried)
        WeakPassphrase - Passphrase shorter than the minimum length
        DecryptionFailed - Wrong passphrase, tampered or malformed bundle
        MalformedPayload - Payload does not have the backup schema shape

Retry Policy:
    Only RateLimited and ServerError are the end result of local retries.
    Everything else is structural and surfaces on the first occurrence.
"""


class AudioVaultError(Exception):
    """
    Base exception for all audio-vault errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch every engine error with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Dictionary with additional context (paths, status codes...).
                 Never contains secrets.

    Example:
        try:
            summary = reconciler.restore(payload)
        except AudioVaultError as e:
            logger.error(f"Restore failed: {e.message}")
            logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description shown to the user.
            details: Optional dictionary containing additional context.
                     Common keys include:
                     - 'path': API path involved in the error
                     - 'status': HTTP status code
                     - 'original_error': The underlying exception message
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(AudioVaultError):
    """
    Raised when the configuration file cannot be read or has the wrong shape.

    Common causes:
        - config.yaml has invalid YAML syntax
        - A section is present but is not a mapping
        - A value has the wrong type (e.g. negative timeout)
    """
    pass


class ConfigurationMissing(ConfigError):
    """
    Raised when a value required for authorization is not configured.

    The engine fails closed: nothing is sent to the provider without a
    client id and a redirect URI.

    Example:
        raise ConfigurationMissing(
            "Spotify client id is not configured",
            details={'field': 'spotify.client_id'}
        )
    """
    pass


class AuthorizationDenied(AudioVaultError):
    """
    Raised when the authorization redirect carries an ``error`` parameter.

    Attributes:
        error: The provider error code (e.g. "access_denied").
    """

    def __init__(self, error: str, description: str | None = None) -> None:
        message = f"Spotify login failed: {error}"
        if description:
            message = f"{message} ({description})"
        super().__init__(message, details={"error": error, "description": description})
        self.error = error


class StateMismatch(AudioVaultError):
    """
    Raised when the redirect state does not match the stored login state.

    Also raised when no login is pending (no stored verifier), which is
    what a replayed callback looks like.
    """
    pass


class NotAuthenticated(AudioVaultError):
    """Raised when an authenticated operation runs without a stored credential."""
    pass


class SessionExpired(AudioVaultError):
    """
    Raised when the stored credential can no longer be used.

    Always accompanied by a logout: when this error reaches the caller
    the token store holds no credential record.
    """
    pass


class RateLimited(AudioVaultError):
    """
    Raised when the API keeps answering 429 after the maximum number of attempts.

    Attributes:
        path: API path of the request.
        attempts: Number of attempts made (equals the retry bound).
        retry_after: Last delay suggested by the provider, if any.
    """

    def __init__(self, path: str, attempts: int, retry_after: float | None = None) -> None:
        super().__init__(
            f"Spotify API rate limit persisted after {attempts} attempts: {path}",
            details={"path": path, "attempts": attempts, "retry_after": retry_after},
        )
        self.path = path
        self.attempts = attempts
        self.retry_after = retry_after


class ServerError(AudioVaultError):
    """
    Raised when the API keeps failing with 5xx (or the connection keeps
    failing) after the maximum number of attempts.

    Attributes:
        status: Last HTTP status code, or None for transport failures.
        path: API path of the request.
    """

    def __init__(self, path: str, status: int | None, attempts: int, reason: str = "") -> None:
        label = status if status is not None else "connection error"
        message = f"Spotify API server error ({label}) after {attempts} attempts: {path}"
        if reason:
            message = f"{message} - {reason}"
        super().__init__(
            message,
            details={"path": path, "status": status, "attempts": attempts},
        )
        self.status = status
        self.path = path


class RemoteRequestFailed(AudioVaultError):
    """
    Raised for a non-2xx response that is not transient.

    Attributes:
        status: HTTP status code (None if no response was received).
        path: API path of the request.
        body: Response body text, for diagnostics.

    Example:
        raise RemoteRequestFailed(404, "/playlists/abc/tracks", '{"error": ...}')
    """

    def __init__(self, status: int | None, path: str, body: str = "") -> None:
        super().__init__(
            f"Spotify API error {status}: {path}",
            details={"status": status, "path": path, "body": body},
        )
        self.status = status
        self.path = path
        self.body = body

    @property
    def is_forbidden(self) -> bool:
        return self.status == 403


class WeakPassphrase(AudioVaultError):
    """Raised when an encryption passphrase is shorter than the minimum length."""
    pass


class DecryptionFailed(AudioVaultError):
    """
    Raised when a bundle cannot be decrypted.

    A wrong passphrase and corrupted data produce the same error; the
    vault never tries to tell them apart.
    """
    pass


class MalformedPayload(AudioVaultError):
    """
    Raised when a backup payload does not have the expected shape.

    Example:
        raise MalformedPayload(
            "Backup payload missing likedTracks",
            details={'field': 'likedTracks'}
        )
    """
    pass
