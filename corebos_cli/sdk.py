"""
coreBOS SDK - High-level client with nice ergonomics.

This layer provides a clean, typed interface for the coreBOS web service
operations. Built on top of the core WebServiceClient.
"""

import builtins
import hashlib
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

from corebos_cli.core.client import DecodeError, ValidationError, WebServiceClient
from corebos_cli.core.types import (
    Challenge,
    LoginResult,
    ModuleDescription,
    ModuleTypes,
    QueryResult,
    Record,
    Session,
    related_records_from_dict,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _shape(parser: Callable[[Any], T], result: Any, operation: str) -> T:
    """Validate an operation result, turning shape mismatches into DecodeError."""
    try:
        return parser(result)
    except ValueError as e:
        raise DecodeError(f"Unexpected {operation} result: {e}", details={"result": result}) from e


def compute_access_key(token: str, key: str, use_password: bool = False) -> str:
    """
    Derive the accessKey sent to login.

    The plain password is sent appended to the token; an access key is
    sent as the lowercase hex MD5 of token + key.
    """
    if use_password:
        return token + key
    return hashlib.md5((token + key).encode("utf-8")).hexdigest()


class CoreBOSClient:
    """
    High-level coreBOS web service client with typed methods.

    Example:
        client = CoreBOSClient("https://demo.corebos.com")
        client.auth.login("admin", "cdYTBpiMR9RfGgO")

        result = client.records.query("select firstname, lastname from Contacts limit 5")
        contact = client.records.create("Contacts", {"lastname": "Doe"})
        client.records.delete(contact.id)

    Each client owns its own endpoint and session, so separate clients can
    be used concurrently from different threads.

    """

    def __init__(self, url: str | None = None, timeout: int | float | None = None):
        """
        Initialize the coreBOS client.

        Args:
            url: coreBOS base URL (or COREBOS_URL env var)
            timeout: Request timeout in seconds (default 10)

        """
        self._client = WebServiceClient(url=url, timeout=timeout)

        # Sub-clients for different domains
        self.auth = AuthOperations(self._client)
        self.records = RecordOperations(self._client)
        self.modules = ModuleOperations(self._client)
        self.service = ServiceOperations(self._client)

    @property
    def url(self) -> str | None:
        """Get the web service endpoint."""
        return self._client.url

    @url.setter
    def url(self, value: str) -> None:
        """Set the coreBOS base URL."""
        self._client.url = value

    @property
    def session(self) -> Session:
        """Get the authentication state of this client."""
        return self._client.session

    @property
    def result_columns(self) -> dict[int, str]:
        """Column names of the last query."""
        return self.records.result_columns


# =============================================================================
# Authentication
# =============================================================================


class AuthOperations:
    """Challenge, login and logout."""

    def __init__(self, client: WebServiceClient):
        self._client = client

    def _request_challenge(self, username: str) -> Challenge:
        result = self._client.call("getchallenge", {"username": username}, "GET", authenticated=False)
        return _shape(Challenge.from_dict, result, "getchallenge")

    def challenge(self, username: str) -> Challenge:
        """
        Request a challenge token and store it in the session.

        Args:
            username: coreBOS user name

        Returns:
            Challenge with token, server time and expire time

        """
        challenge = self._request_challenge(username)
        session = self._client.session
        session.server_time = challenge.server_time
        session.expire_time = challenge.expire_time
        session.token = challenge.token
        return challenge

    def login(self, username: str, access_key: str, use_password: bool = False) -> LoginResult:
        """
        Log in with a fresh challenge.

        Args:
            username: coreBOS user name
            access_key: The user's access key, or password when use_password is set
            use_password: Send the plain password instead of the hashed access key

        Returns:
            LoginResult with session id and user id

        Raises:
            APIError: The challenge or login was rejected

        """
        challenge = self._request_challenge(username)
        result = self._client.call(
            "login",
            {
                "username": username,
                "accessKey": compute_access_key(challenge.token, access_key, use_password),
            },
            "POST",
            authenticated=False,
        )
        login = _shape(LoginResult.from_dict, result, "login")

        # The token is spent; only a completed login touches the session
        session = self._client.session
        session.server_time = challenge.server_time
        session.expire_time = challenge.expire_time
        session.token = ""
        session.service_user = username
        session.service_key = access_key
        session.session_id = login.session_id
        session.user_id = login.user_id
        logger.info("Logged in as %s (user %s)", username, login.user_id)
        return login

    def logout(self) -> bool:
        """
        Invalidate the session on the server.

        The local session is kept as is; discard the client afterwards.

        Returns:
            True on success

        """
        self._client.post("logout")
        logger.info("Logged out %s", self._client.session.service_user)
        return True


# =============================================================================
# Record Operations
# =============================================================================


class RecordOperations:
    """Query and manage CRM records."""

    def __init__(self, client: WebServiceClient):
        self._client = client
        self.result_columns: dict[int, str] = {}

    def query(self, query: str) -> QueryResult:
        """
        Run a query in the web service query language.

        Args:
            query: Query text; the terminating ';' is optional

        Returns:
            QueryResult with records and column names

        """
        statement = query.strip(" ;") + ";"
        result = self._client.get("query", {"query": statement})
        query_result = _shape(QueryResult.from_list, result, "query")
        self.result_columns = query_result.columns
        return query_result

    def retrieve(self, record_id: str) -> Record:
        """Get the details of a record."""
        result = self._client.get("retrieve", {"id": record_id})
        return _shape(Record.from_dict, result, "retrieve")

    def _save(self, operation: str, module: str, values: Mapping[str, Any]) -> Record:
        element = dict(values)
        # Records belong to the logged in user unless told otherwise
        if "assigned_user_id" not in element:
            element["assigned_user_id"] = self._client.session.user_id
        result = self._client.post(operation, {"elementType": module, "element": element})
        return _shape(Record.from_dict, result, operation)

    def create(self, module: str, values: Mapping[str, Any]) -> Record:
        """
        Create a record.

        Args:
            module: Module name (e.g. Contacts)
            values: Field values

        Returns:
            The created Record

        """
        return self._save("create", module, values)

    def update(self, module: str, values: Mapping[str, Any]) -> Record:
        """Update a record. All mandatory fields must be present."""
        return self._save("update", module, values)

    def revise(self, module: str, values: Mapping[str, Any]) -> Record:
        """Update only the given fields of a record."""
        return self._save("revise", module, values)

    def delete(self, record_id: str) -> bool:
        """
        Delete a record.

        Returns:
            True on success

        Raises:
            ValidationError: The service did not report a successful delete

        """
        result = self._client.post("delete", {"id": record_id})
        if not isinstance(result, dict):
            raise DecodeError("Unexpected delete result: expected an object", details={"result": result})
        if result.get("status") != "successful":
            raise ValidationError("Unexpected DELETE error", details={"result": result})
        return True

    def get_related(
        self,
        record_id: str,
        module: str,
        related_module: str,
        query_parameters: Mapping[str, Any] | None = None,
    ) -> builtins.list[Record]:
        """
        Get the records of related_module related to a record.

        Args:
            record_id: Web service id of the record
            module: Module of the record
            related_module: Module of the related records
            query_parameters: Extra filters (productDiscriminator, limit, offset, ...)

        Returns:
            List of related Records

        """
        result = self._client.post(
            "getRelatedRecords",
            {
                "id": record_id,
                "module": module,
                "relatedModule": related_module,
                "queryParameters": dict(query_parameters or {}),
            },
        )
        return _shape(related_records_from_dict, result, "getRelatedRecords")

    def set_related(self, relate_this_id: str, with_these_ids: Iterable[str]) -> bool:
        """
        Relate a record with other records.

        Args:
            relate_this_id: Record to relate
            with_these_ids: Records to relate it with

        Returns:
            The service's boolean answer

        """
        result = self._client.post(
            "SetRelation",
            {"relate_this_id": relate_this_id, "with_these_ids": list(with_these_ids)},
        )
        if not isinstance(result, bool):
            raise DecodeError("Unexpected SetRelation result: expected a boolean", details={"result": result})
        return result


# =============================================================================
# Module Operations
# =============================================================================


class ModuleOperations:
    """Discover modules and their fields."""

    def __init__(self, client: WebServiceClient):
        self._client = client

    def list_types(self, field_types: Iterable[str] | None = None) -> ModuleTypes:
        """
        List the modules accessible to the connected user.

        Args:
            field_types: Only modules with a field of one of these types

        Returns:
            ModuleTypes with module names

        """
        result = self._client.get("listtypes", {"fieldTypeList": list(field_types or [])})
        return _shape(ModuleTypes.from_dict, result, "listtypes")

    def describe(self, module: str) -> ModuleDescription:
        """Get the permissions and fields of a module."""
        result = self._client.get("describe", {"elementType": module})
        return _shape(ModuleDescription.from_dict, result, "describe")


# =============================================================================
# Service Operations
# =============================================================================


class ServiceOperations:
    """Custom web service methods."""

    def __init__(self, client: WebServiceClient):
        self._client = client

    def invoke(
        self,
        operation: str,
        params: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
        method: str = "POST",
    ) -> Any:
        """
        Invoke any web service method by name.

        Args:
            operation: Name of the web service method
            params: Parameters as a mapping or (name, value) pairs; the
                first value given for a name is the one sent
            method: GET or POST

        Returns:
            The method's result, as decoded JSON

        """
        return self._client.call(operation, params, method)

    def login_page(self, template: str, language: str, csrf: str) -> str:
        """Get the HTML of the login page."""
        result = self._client.get(
            "getLoginPage",
            {"template": template, "language": language, "csrf": csrf},
        )
        if not isinstance(result, str):
            raise DecodeError("Unexpected getLoginPage result: expected a string", details={"result": result})
        return result
