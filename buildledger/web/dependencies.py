"""Shared dependencies for buildledger web routes.

These providers turn the authenticated identity into a branch-scoped store.
The auth layer is expected to put the caller on `request.state.user` (a
`User` or a token payload mapping carrying at least `country`).

Usage:
    from fastapi import Depends
    from buildledger.web.dependencies import get_scoped_store

    @router.get("/projects")
    async def list_projects(scoped: ScopedStore = Depends(get_scoped_store)):
        return [p.to_document() for p in await scoped.get_projects()]
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from buildledger.config import get_config
from buildledger.errors import CountryMismatch, InvalidCountry
from buildledger.isolation import CountryClaim, ScopedStore, ensure_path_matches, validate_country
from buildledger.models import Country
from buildledger.storage.store import RecordStore

# Global singleton store
_store: RecordStore | None = None


def get_store() -> RecordStore:
    """Get the process-wide RecordStore built from configuration.

    Backend selection happens at application startup (`select_backend()`);
    until then the store runs on local files.
    """
    global _store
    if _store is None:
        _store = RecordStore.from_config(get_config())
    return _store


def set_store(store: RecordStore | None) -> None:
    """Install (or clear) the process-wide store, e.g. from an app lifespan hook."""
    global _store
    _store = store


def get_country_claim(request: Request) -> CountryClaim:
    """Resolve the caller's branch from the authenticated identity.

    Raises:
        HTTPException: 401 without an identity, 400 when its country is invalid
    """
    identity = getattr(request.state, "user", None)
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return CountryClaim.from_identity(identity)
    except InvalidCountry as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except ValueError as e:
        # Unknown role
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


def validated_path_country(country: str) -> Country:
    """Validate a `{country}` path segment."""
    try:
        return validate_country(country)
    except InvalidCountry as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


def require_path_matches_claim(
    country: Country = Depends(validated_path_country),
    claim: CountryClaim = Depends(get_country_claim),
) -> Country:
    """Reject a `{country}` path segment that names another branch."""
    try:
        return ensure_path_matches(claim, country)
    except CountryMismatch as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e


def get_scoped_store(
    claim: CountryClaim = Depends(get_country_claim),
    store: RecordStore = Depends(get_store),
) -> ScopedStore:
    """Record store restricted to the caller's branch."""
    return ScopedStore(store, claim, get_config().payroll)
