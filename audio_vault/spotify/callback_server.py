"""
Loopback HTTP receiver for the OAuth redirect.

When the registered redirect URI points at this machine
(http://127.0.0.1:PORT/path or http://localhost:PORT/path), the CLI
starts a tiny HTTP server on that address, opens the authorization URL
in the browser and waits for the provider to redirect back. The first
request that carries `code` or `error` is captured and its full URL is
handed to CredentialManager.complete_login_from_redirect(), which does
all of the validation. The receiver itself never looks at state or
exchanges anything.

Usage:
    with RedirectReceiver(config.spotify.redirect_uri) as receiver:
        manager.begin_login()
        redirected_url = receiver.wait(timeout=300)
    manager.complete_login_from_redirect(redirected_url)
"""

import threading
import urllib.parse
from http.server import BaseHTTPRequestHandler, HTTPServer

from audio_vault.core.logger import get_logger


LOOPBACK_HOSTS = ("127.0.0.1", "localhost")

DEFAULT_WAIT_SECONDS = 300

SUCCESS_PAGE = """
<html>
<head><title>Audio Vault</title></head>
<body style="font-family: Arial, sans-serif; text-align: center; margin-top: 50px;">
    <h1 style="color: #1DB954;">Authorization received</h1>
    <p>You can now close this window and return to the terminal.</p>
</body>
</html>
"""

ERROR_PAGE = """
<html>
<head><title>Audio Vault</title></head>
<body style="font-family: Arial, sans-serif; text-align: center; margin-top: 50px;">
    <h1 style="color: #E22134;">Authorization failed</h1>
    <p>Return to the terminal for details.</p>
</body>
</html>
"""

logger = get_logger(__name__)


def is_loopback_redirect(redirect_uri: str) -> bool:
    """True when the redirect URI is plain http on this machine with an explicit port."""
    parsed = urllib.parse.urlsplit(redirect_uri)
    return parsed.scheme == "http" and parsed.hostname in LOOPBACK_HOSTS and parsed.port is not None


class _RedirectHandler(BaseHTTPRequestHandler):
    """Captures the first callback request on the parent server."""

    server: "_RedirectServer"

    def do_GET(self) -> None:
        parsed = urllib.parse.urlsplit(self.path)
        params = urllib.parse.parse_qs(parsed.query)

        if parsed.path != self.server.callback_path or not (
            "code" in params or "error" in params
        ):
            self.send_response(404)
            self.end_headers()
            return

        if "error" in params:
            self._respond(400, ERROR_PAGE)
        else:
            self._respond(200, SUCCESS_PAGE)

        self.server.capture(self.path)

    def _respond(self, status: int, page: str) -> None:
        self.send_response(status)
        self.send_header("Content-type", "text/html")
        self.end_headers()
        self.wfile.write(page.encode("utf-8"))

    def log_message(self, format, *args) -> None:
        # The request line contains the authorization code
        pass


class _RedirectServer(HTTPServer):

    def __init__(self, address: tuple[str, int], callback_path: str) -> None:
        super().__init__(address, _RedirectHandler)
        self.callback_path = callback_path
        self.captured_path: str | None = None
        self.received = threading.Event()

    def capture(self, path: str) -> None:
        if self.captured_path is None:
            self.captured_path = path
            self.received.set()


class RedirectReceiver:
    """
    Background HTTP server waiting for the authorization redirect.

    Attributes:
        redirect_uri: The registered redirect URI; determines host, port
                      and callback path.
        port: Port actually bound (differs from the URI only when the URI
              says port 0, which tests use).
    """

    def __init__(self, redirect_uri: str) -> None:
        parsed = urllib.parse.urlsplit(redirect_uri)
        if parsed.hostname is None or parsed.port is None:
            raise ValueError(f"Redirect URI has no host/port: {redirect_uri}")

        self.redirect_uri = redirect_uri
        self._host = parsed.hostname
        self._requested_port = parsed.port
        self._callback_path = parsed.path or "/"
        self._server: _RedirectServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        if self._server is None:
            return self._requested_port
        return self._server.server_address[1]

    @property
    def callback_url(self) -> str:
        return f"http://{self._host}:{self.port}{self._callback_path}"

    def start(self) -> None:
        if self._server is not None:
            return
        self._server = _RedirectServer((self._host, self._requested_port), self._callback_path)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.debug(f"Waiting for authorization redirect on {self.callback_url}")

    def wait(self, timeout: float = DEFAULT_WAIT_SECONDS) -> str:
        """
        Block until the redirect arrives and return its full URL.

        Raises:
            TimeoutError: Nothing arrived within timeout seconds.
        """
        if self._server is None:
            raise RuntimeError("RedirectReceiver.start() has not been called")

        if not self._server.received.wait(timeout):
            raise TimeoutError(f"No authorization redirect received within {timeout:.0f} seconds")

        return f"http://{self._host}:{self.port}{self._server.captured_path}"

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def __enter__(self) -> "RedirectReceiver":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
