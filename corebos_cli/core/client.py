"""
Core HTTP client for the coreBOS web service API.

Handles endpoint configuration, request encoding, envelope decoding and
error handling. Session state lives here so every operation can attach it.
"""

import http.client
import json
import logging
import os
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Iterable, Mapping
from typing import Any

from corebos_cli.core.types import Envelope, Session

logger = logging.getLogger(__name__)

# Configuration
SERVICE_PATH = "webservice.php"
DEFAULT_TIMEOUT = 10

# Parameters owned by the engine; caller values never replace them
RESERVED_PARAMS = ("operation", "sessionName")


class CLIError(Exception):
    """Base error class for coreBOS client errors."""

    kind = "local"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        result: dict[str, Any] = {"error": self.message, "kind": self.kind}
        if self.details:
            result["details"] = self.details
        return result


class APIError(CLIError):
    """Error reported by the web service in a failed envelope."""

    kind = "remote"

    def __init__(self, code: str, message: str, details: dict | None = None):
        super().__init__(f"{code}: {message}", details)
        self.code = code
        self.remote_message = message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON output."""
        result = super().to_dict()
        result["code"] = self.code
        return result


class TransportError(CLIError):
    """Connection, DNS or timeout failure talking to the web service."""

    kind = "transport"


class DecodeError(CLIError):
    """Response body that is not a valid envelope or has an unexpected result shape."""

    kind = "decode"


class ValidationError(CLIError):
    """Validation error for local input/data issues (not API errors)."""


class NotAuthenticatedError(CLIError):
    """An operation that needs a session was attempted without one."""


def _env_timeout() -> float:
    """Read the request timeout from COREBOS_TIMEOUT."""
    value = os.environ.get("COREBOS_TIMEOUT")
    if not value:
        return DEFAULT_TIMEOUT
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f"Invalid COREBOS_TIMEOUT: {value!r}, expected seconds")


def build_service_url(base_url: str) -> str:
    """Normalize a coreBOS base URL into its web service endpoint."""
    return f"{base_url.rstrip('/')}/{SERVICE_PATH}"


def encode_value(value: Any) -> str:
    """Encode a parameter value for the form/query string."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value)
    return str(value)


class WebServiceClient:
    """
    Low-level client for the coreBOS web service.

    Handles:
    - Endpoint configuration (<base>/webservice.php)
    - GET/POST form-encoded requests with a fixed timeout
    - Envelope decoding and error classification
    - Attaching the session id to authenticated operations
    """

    def __init__(self, url: str | None = None, timeout: int | float | None = None):
        """
        Initialize the web service client.

        Args:
            url: coreBOS base URL (or COREBOS_URL env var)
            timeout: Request timeout in seconds (or COREBOS_TIMEOUT env var)

        """
        base_url = url or os.environ.get("COREBOS_URL")
        self.service_url = build_service_url(base_url) if base_url else None
        self.timeout = timeout if timeout is not None else _env_timeout()
        self.session = Session()

    @property
    def url(self) -> str | None:
        """Get the web service endpoint."""
        return self.service_url

    @url.setter
    def url(self, value: str) -> None:
        """Set the endpoint from a coreBOS base URL."""
        self.service_url = build_service_url(value)

    def _ensure_service_url(self) -> str:
        """Ensure an endpoint is configured."""
        if not self.service_url:
            raise ValidationError("coreBOS URL not set. Set COREBOS_URL env var or use --url flag")
        return self.service_url

    def _ensure_session_id(self, operation: str) -> str:
        """Ensure the session is authenticated."""
        if not self.session.session_id:
            raise NotAuthenticatedError(
                f"Operation '{operation}' requires an authenticated session",
                details={"state": self.session.state},
            )
        return self.session.session_id

    def build_params(
        self,
        operation: str,
        params: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
        authenticated: bool = True,
    ) -> dict[str, str]:
        """
        Build the encoded parameter set for an operation.

        The first occurrence of a parameter name wins, and the reserved
        ``operation``/``sessionName`` entries are always the engine's own.
        """
        encoded = {"operation": operation}
        if authenticated:
            encoded["sessionName"] = self._ensure_session_id(operation)

        if params is None:
            return encoded
        pairs = params.items() if isinstance(params, Mapping) else params
        seen = set(encoded)
        for name, value in pairs:
            if name in seen or name in RESERVED_PARAMS:
                continue
            seen.add(name)
            if value is not None:
                encoded[name] = encode_value(value)
        return encoded

    def _send(self, method: str, params: dict[str, str]) -> bytes:
        """Perform the HTTP request and return the raw body."""
        service_url = self._ensure_service_url()
        body = urllib.parse.urlencode(params)

        if method == "POST":
            req = urllib.request.Request(
                service_url,
                data=body.encode("utf-8"),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                method="POST",
            )
        else:
            req = urllib.request.Request(f"{service_url}?{body}", method="GET")

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return response.read()

        except urllib.error.HTTPError as e:
            # The service answers errors with an envelope; decode it like any other body
            logger.debug("HTTP %s from %s", e.code, service_url)
            try:
                return e.read()
            except (OSError, http.client.HTTPException) as read_error:
                raise TransportError(f"HTTP {e.code}: {read_error}") from read_error

        except urllib.error.URLError as e:
            logger.error("Connection error calling %s: %s", service_url, e.reason)
            raise TransportError(f"Connection error: {e.reason}") from e

        except TimeoutError as e:
            logger.error("Request to %s timed out after %s seconds", service_url, self.timeout)
            raise TransportError(f"Request timed out after {self.timeout} seconds") from e

        except OSError as e:
            logger.error("Transport failure calling %s: %s", service_url, e)
            raise TransportError(f"Transport error: {e}") from e

        except http.client.HTTPException as e:
            logger.error("Malformed HTTP response from %s: %r", service_url, e)
            raise TransportError(f"Transport error: {e!r}") from e

    def _decode(self, body: bytes) -> Envelope:
        """Decode a response body into an envelope."""
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"Invalid JSON response: {e}") from e
        try:
            return Envelope.from_dict(data)
        except ValueError as e:
            raise DecodeError(str(e), details={"response": data}) from e

    def call(
        self,
        operation: str,
        params: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
        method: str = "GET",
        authenticated: bool = True,
    ) -> Any:
        """
        Invoke a web service operation.

        Args:
            operation: Remote operation name (e.g. query, create)
            params: Operation parameters, as a mapping or (name, value) pairs
            method: GET or POST
            authenticated: Attach the session id (False only for getchallenge/login)

        Returns:
            The envelope's result value

        Raises:
            TransportError: Connection failure or timeout
            DecodeError: Malformed JSON or envelope
            APIError: The service reported success=false
            NotAuthenticatedError: No session for an authenticated operation

        """
        method = method.upper()
        if method not in ("GET", "POST"):
            raise ValidationError(f"Unsupported HTTP method: {method}")

        encoded = self.build_params(operation, params, authenticated)
        logger.debug("%s %s", method, operation)

        envelope = self._decode(self._send(method, encoded))
        if not envelope.success:
            logger.debug("%s failed: %s", operation, envelope.error_code)
            raise APIError(envelope.error_code, envelope.error_message)

        logger.debug("%s succeeded", operation)
        return envelope.result

    # =========================================================================
    # HTTP Methods
    # =========================================================================

    def get(self, operation: str, params: Mapping[str, Any] | None = None) -> Any:
        """Invoke an authenticated operation with GET."""
        return self.call(operation, params, "GET")

    def post(self, operation: str, params: Mapping[str, Any] | None = None) -> Any:
        """Invoke an authenticated operation with POST."""
        return self.call(operation, params, "POST")
