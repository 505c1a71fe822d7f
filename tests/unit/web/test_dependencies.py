"""Tests for buildledger.web.dependencies - branch-scoped dependency providers."""

import pytest
from fastapi import Depends, FastAPI, HTTPException
from fastapi.testclient import TestClient

from buildledger.isolation import ScopedStore
from buildledger.models import Country
from buildledger.storage.kinds import EntityKind
from buildledger.storage.local import JsonFileBackend
from buildledger.storage.store import RecordStore
from buildledger.web.dependencies import (
    get_scoped_store,
    get_store,
    require_path_matches_claim,
    set_store,
)


@pytest.fixture
def store(tmp_path):
    """Store on local files; it runs on the local backend until selection."""
    return RecordStore(JsonFileBackend(tmp_path / "data"), mode="local")


@pytest.fixture
def app(store):
    """Create test FastAPI app with a header-driven stand-in for the auth layer."""
    test_app = FastAPI()

    @test_app.middleware("http")
    async def fake_auth(request, call_next):
        country = request.headers.get("x-country")
        if country is not None:
            request.state.user = {
                "id": "u1",
                "username": "tester",
                "country": country,
                "role": request.headers.get("x-role", "admin"),
            }
        return await call_next(request)

    @test_app.get("/projects")
    async def list_projects(scoped: ScopedStore = Depends(get_scoped_store)):
        return [p.name for p in await scoped.get_projects()]

    @test_app.post("/projects")
    async def create_project(payload: dict, scoped: ScopedStore = Depends(get_scoped_store)):
        try:
            project = await scoped.create(EntityKind.PROJECT, payload)
        except PermissionError as e:
            raise HTTPException(status_code=403, detail=str(e)) from e
        return project.to_document()

    @test_app.get("/{country}/projects")
    async def branch_projects(
        country: Country = Depends(require_path_matches_claim),
        scoped: ScopedStore = Depends(get_scoped_store),
    ):
        return {"country": country.value, "projects": [p.name for p in await scoped.get_projects()]}

    test_app.dependency_overrides[get_store] = lambda: store
    return test_app


@pytest.fixture
def client(app):
    """Create test client."""
    with TestClient(app) as test_client:
        yield test_client


class TestCountryClaim:
    """Tests for resolving the caller's branch."""

    def test_missing_identity_is_unauthorized(self, client):
        response = client.get("/projects")
        assert response.status_code == 401

    @pytest.mark.parametrize("country", ["france", "EGYPT", ""])
    def test_invalid_country_is_bad_request(self, client, country):
        response = client.get("/projects", headers={"x-country": country})
        assert response.status_code == 400

    def test_unknown_role_is_bad_request(self, client):
        response = client.get("/projects", headers={"x-country": "egypt", "x-role": "superuser"})
        assert response.status_code == 400


class TestPathCountry:
    """Tests for `{country}` path segments."""

    def test_matching_path(self, client):
        response = client.get("/egypt/projects", headers={"x-country": "egypt"})
        assert response.status_code == 200
        assert response.json() == {"country": "egypt", "projects": []}

    def test_other_branch_is_forbidden(self, client):
        response = client.get("/libya/projects", headers={"x-country": "egypt"})
        assert response.status_code == 403
        assert "does not match" in response.json()["detail"]

    def test_unknown_path_country(self, client):
        response = client.get("/atlantis/projects", headers={"x-country": "egypt"})
        assert response.status_code == 400


class TestScopedRoutes:
    """Writes land in the caller's branch and reads stay in it."""

    def test_created_project_is_invisible_to_other_branch(self, client):
        created = client.post("/projects", json={"name": "Cairo Tower", "country": "libya"}, headers={"x-country": "egypt"})
        assert created.status_code == 200
        assert created.json()["country"] == "egypt"
        assert created.json()["createdBy"] == "u1"

        assert client.get("/projects", headers={"x-country": "egypt"}).json() == ["Cairo Tower"]
        assert client.get("/projects", headers={"x-country": "libya"}).json() == []

    def test_non_admin_cannot_create_projects(self, client):
        response = client.post("/projects", json={"name": "Tower"}, headers={"x-country": "egypt", "x-role": "user"})
        assert response.status_code == 403


def test_get_store_is_singleton():
    set_store(None)
    try:
        assert get_store() is get_store()
    finally:
        set_store(None)
