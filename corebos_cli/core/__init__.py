"""
Core layer - Wire protocol, session state and typed results.

This layer provides:
- Typed dataclasses for the session and each operation's result
- Low-level HTTP client with envelope decoding and error handling
"""

from corebos_cli.core.client import (
    APIError,
    CLIError,
    DecodeError,
    NotAuthenticatedError,
    TransportError,
    ValidationError,
    WebServiceClient,
)
from corebos_cli.core.types import (
    Challenge,
    Envelope,
    LoginResult,
    ModuleDescription,
    ModuleField,
    ModuleTypes,
    QueryResult,
    Record,
    Session,
)

__all__ = [
    "APIError",
    "CLIError",
    "Challenge",
    "DecodeError",
    "Envelope",
    "LoginResult",
    "ModuleDescription",
    "ModuleField",
    "ModuleTypes",
    "NotAuthenticatedError",
    "QueryResult",
    "Record",
    "Session",
    "TransportError",
    "ValidationError",
    "WebServiceClient",
]
