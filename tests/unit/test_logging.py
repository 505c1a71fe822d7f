"""Tests for buildledger.core.logging - branch context on log events."""

import pytest
import structlog

from buildledger.core.logging import add_branch, bind_branch, build_processors, clear_branch


@pytest.fixture(autouse=True)
def unbound():
    clear_branch()
    yield
    clear_branch()


def test_no_branch_bound():
    assert add_branch(None, "info", {"event": "x"}) == {"event": "x"}


def test_bound_branch_is_stamped():
    bind_branch("egypt", user="cli")

    assert add_branch(None, "info", {"event": "x"}) == {"event": "x", "country": "egypt"}
    assert structlog.contextvars.get_contextvars() == {"user": "cli"}


def test_explicit_country_wins():
    bind_branch("egypt")

    assert add_branch(None, "info", {"event": "x", "country": "libya"})["country"] == "libya"


def test_clear_branch():
    bind_branch("libya", user="cli")
    clear_branch()

    assert "country" not in add_branch(None, "info", {"event": "x"})
    assert structlog.contextvars.get_contextvars() == {}


@pytest.mark.parametrize(
    "json_format, renderer",
    [(True, structlog.processors.JSONRenderer), (False, structlog.dev.ConsoleRenderer)],
)
def test_renderer_follows_format(json_format, renderer):
    processors = build_processors(json_format)

    assert isinstance(processors[-1], renderer)
    assert add_branch in processors
