"""Error taxonomy for the storage and aggregation core.

Not-found is deliberately absent: lookups return None, updates return None
and deletes return False.
"""

from __future__ import annotations

from typing import Any


class BuildLedgerError(Exception):
    """Base class for all buildledger errors."""


class InvalidCountry(BuildLedgerError):
    """A country value outside the recognised branches was supplied."""

    def __init__(self, value: Any, message: str | None = None):
        self.value = value
        super().__init__(message or f"Invalid country {value!r}. Must be egypt or libya")


class InvalidPartition(BuildLedgerError):
    """A create call carried no resolvable country for a partitioned kind."""

    def __init__(self, kind: str, value: Any):
        self.kind = kind
        self.value = value
        super().__init__(f"Cannot place {kind} record: country {value!r} is not a known partition")


class ValidationFailure(BuildLedgerError):
    """Entity-specific required-field or type violations."""

    def __init__(self, kind: str, errors: list[dict[str, Any]]):
        self.kind = kind
        self.errors = errors
        details = "; ".join(f"{e.get('field') or '<record>'}: {e.get('message')}" for e in errors)
        super().__init__(f"Invalid {kind}: {details}")

    @classmethod
    def from_pydantic(cls, kind: str, exc: Any) -> ValidationFailure:
        errors = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()))
            message = err.get("msg", "invalid value")
            # pydantic prefixes messages raised from validators
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            errors.append({"field": loc, "message": message})
        return cls(kind, errors)


class StorageError(BuildLedgerError):
    """A write could not be persisted; the caller's request must fail."""

    def __init__(self, kind: str, operation: str, detail: str | None = None):
        self.kind = kind
        self.operation = operation
        message = f"Failed to {operation} {kind}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class BackendUnavailable(BuildLedgerError):
    """The remote document database was requested but is not reachable."""


class CountryMismatch(InvalidCountry):
    """A URL-segment country disagrees with the caller's own branch."""

    def __init__(self, value: Any, claimed: Any):
        self.claimed = claimed
        super().__init__(value, f"Country {value!r} does not match the authenticated branch {claimed!r}")
