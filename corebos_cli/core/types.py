"""
Core types for the coreBOS web service.

These dataclasses hold session state and the typed shape of each
operation's result. ``from_dict`` validates the shape and raises
``ValueError`` when the service returns something else.
"""

from dataclasses import dataclass, field
from typing import Any

# =============================================================================
# Session
# =============================================================================


UNAUTHENTICATED = "unauthenticated"
CHALLENGED = "challenged"
AUTHENTICATED = "authenticated"


@dataclass
class Session:
    """Authentication state for one connection."""

    server_time: float = 0.0
    expire_time: str = ""
    token: str = ""
    service_user: str = ""
    service_key: str = field(default="", repr=False)
    session_id: str = ""
    user_id: str = ""

    @property
    def state(self) -> str:
        """Current position in the login lifecycle."""
        if self.session_id:
            return AUTHENTICATED
        if self.token:
            return CHALLENGED
        return UNAUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        """Check if a session id is held."""
        return bool(self.session_id)


def _require(data: Any, key: str, kind: type | tuple[type, ...], what: str) -> Any:
    if not isinstance(data, dict):
        raise ValueError(f"Expected {what} object, got {type(data).__name__}")
    if key not in data:
        raise ValueError(f"Missing '{key}' in {what} result")
    value = data[key]
    if not isinstance(value, kind):
        raise ValueError(f"Unexpected type for '{key}' in {what} result: {type(value).__name__}")
    return value


# =============================================================================
# Envelope
# =============================================================================


@dataclass
class Envelope:
    """The {success, result, error} wrapper of every response."""

    success: bool
    result: Any = None
    error_code: str = ""
    error_message: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "Envelope":
        """Create from a decoded response body."""
        success = _require(data, "success", bool, "envelope")
        if success:
            if "result" not in data:
                raise ValueError("Successful envelope has no result")
            return cls(success=True, result=data["result"])

        error = _require(data, "error", dict, "envelope")
        return cls(
            success=False,
            error_code=_require(error, "code", str, "error"),
            error_message=_require(error, "message", str, "error"),
        )


# =============================================================================
# Authentication Types
# =============================================================================


@dataclass
class Challenge:
    """Result of getchallenge."""

    token: str
    server_time: float
    expire_time: str

    @classmethod
    def from_dict(cls, data: Any) -> "Challenge":
        """Create from API result."""
        expire_time = _require(data, "expireTime", (str, int, float), "challenge")
        return cls(
            token=_require(data, "token", str, "challenge"),
            server_time=float(_require(data, "serverTime", (int, float), "challenge")),
            expire_time=str(expire_time),
        )


@dataclass
class LoginResult:
    """Result of login."""

    session_id: str
    user_id: str
    version: str | None = None
    vtiger_version: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "LoginResult":
        """Create from API result."""
        return cls(
            session_id=_require(data, "sessionName", str, "login"),
            user_id=_require(data, "userId", str, "login"),
            version=data.get("version"),
            vtiger_version=data.get("vtigerVersion"),
        )


# =============================================================================
# Record Types
# =============================================================================


@dataclass
class Record:
    """A CRM record as returned by retrieve/create/update/revise."""

    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str | None:
        """Web service id (e.g. 12x34)."""
        return self.fields.get("id")

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    @classmethod
    def from_dict(cls, data: Any) -> "Record":
        """Create from API result."""
        if not isinstance(data, dict):
            raise ValueError(f"Expected record object, got {type(data).__name__}")
        return cls(fields=data)


@dataclass
class QueryResult:
    """Rows returned by query and the column names of the first row."""

    records: list[Record] = field(default_factory=list)
    columns: dict[int, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.records)

    @classmethod
    def from_list(cls, data: Any) -> "QueryResult":
        """Create from API result."""
        if not isinstance(data, list):
            raise ValueError(f"Expected list of records, got {type(data).__name__}")
        records = [Record.from_dict(row) for row in data]
        columns = dict(enumerate(records[0].fields)) if records else {}
        return cls(records=records, columns=columns)


def related_records_from_dict(data: Any) -> list[Record]:
    """Extract the records of a getRelatedRecords result."""
    rows = _require(data, "records", list, "related records")
    return [Record.from_dict(row) for row in rows]


# =============================================================================
# Module Types
# =============================================================================


@dataclass
class ModuleTypes:
    """Modules accessible to the connected user."""

    types: list[str] = field(default_factory=list)
    information: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "ModuleTypes":
        """Create from API result."""
        types = _require(data, "types", list, "listtypes")
        if not all(isinstance(name, str) for name in types):
            raise ValueError("Module names in listtypes result must be strings")
        information = data.get("information") or {}
        if not isinstance(information, dict):
            raise ValueError("Unexpected type for 'information' in listtypes result")
        if not all(isinstance(info, dict) for info in information.values()):
            raise ValueError("Module information in listtypes result must be objects")
        return cls(types=types, information=information)


@dataclass
class ModuleField:
    """A field of a module."""

    name: str
    label: str = ""
    mandatory: bool = False
    type: dict[str, Any] = field(default_factory=dict)
    nullable: bool = True
    editable: bool = True
    default: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModuleField":
        """Create from API result."""
        return cls(
            name=_require(data, "name", str, "field"),
            label=data.get("label") or "",
            mandatory=bool(data.get("mandatory", False)),
            type=data.get("type") or {},
            nullable=bool(data.get("nullable", True)),
            editable=bool(data.get("editable", True)),
            default=data.get("default"),
        )


@dataclass
class ModuleDescription:
    """Permissions and fields of a module, as returned by describe."""

    name: str
    label: str = ""
    createable: bool = False
    updateable: bool = False
    deleteable: bool = False
    retrieveable: bool = False
    id_prefix: str | None = None
    label_fields: str | None = None
    fields: list[ModuleField] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Any) -> "ModuleDescription":
        """Create from API result."""
        name = _require(data, "name", str, "describe")
        raw_fields = data.get("fields") or []
        if not isinstance(raw_fields, list):
            raise ValueError("Unexpected type for 'fields' in describe result")
        return cls(
            name=name,
            label=data.get("label") or name,
            createable=bool(data.get("createable", False)),
            updateable=bool(data.get("updateable", False)),
            deleteable=bool(data.get("deleteable", False)),
            retrieveable=bool(data.get("retrieveable", False)),
            id_prefix=data.get("idPrefix"),
            label_fields=data.get("labelFields"),
            fields=[ModuleField.from_dict(f) for f in raw_fields],
            raw=data,
        )
