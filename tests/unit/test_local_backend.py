"""Unit tests for the JSON file backend."""

from __future__ import annotations

import asyncio
import json

import pytest

from buildledger.errors import StorageError
from buildledger.storage.kinds import KIND_SPECS, EntityKind
from buildledger.storage.local import JsonFileBackend

PROJECTS = KIND_SPECS[EntityKind.PROJECT]
SPENDINGS = KIND_SPECS[EntityKind.SPENDING]


def _doc(record_id: str, country: str = "egypt", **extra) -> dict:
    return {"id": record_id, "country": country, **extra}


@pytest.mark.asyncio
async def test_missing_directory_is_created_and_empty(tmp_path):
    backend = JsonFileBackend(tmp_path / "nested" / "data")

    assert await backend.load_all(PROJECTS, "egypt") == []
    assert (tmp_path / "nested" / "data").is_dir()


@pytest.mark.asyncio
async def test_partitioned_file_layout(data_dir):
    backend = JsonFileBackend(data_dir)

    await backend.insert(PROJECTS, "egypt", _doc("p1", name="Tower"))
    await backend.insert(PROJECTS, "libya", _doc("p2", "libya", name="Bridge"))

    assert json.loads((data_dir / "projects_egypt.json").read_text()) == [_doc("p1", name="Tower")]
    assert json.loads((data_dir / "projects_libya.json").read_text()) == [_doc("p2", "libya", name="Bridge")]
    assert [d["id"] for d in await backend.load_all(PROJECTS, None)] == ["p1", "p2"]


@pytest.mark.asyncio
async def test_shared_file_is_filtered_by_country(data_dir):
    backend = JsonFileBackend(data_dir)

    await backend.insert(SPENDINGS, "egypt", _doc("s1", amount=1))
    await backend.insert(SPENDINGS, "libya", _doc("s2", "libya", amount=2))

    assert len(json.loads((data_dir / "spendings.json").read_text())) == 2
    assert [d["id"] for d in await backend.load_all(SPENDINGS, "libya")] == ["s2"]
    assert await backend.find(SPENDINGS, "egypt", "s2") is None
    assert await backend.remove(SPENDINGS, "egypt", "s2") is False


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["{not json", '{"id": "x"}', ""])
async def test_corrupt_file_loads_as_empty(data_dir, content):
    data_dir.mkdir(parents=True)
    (data_dir / "projects_egypt.json").write_text(content)

    assert await JsonFileBackend(data_dir).load_all(PROJECTS, "egypt") == []


@pytest.mark.asyncio
async def test_insertion_order_is_preserved(data_dir):
    backend = JsonFileBackend(data_dir)
    for i in range(5):
        await backend.insert(PROJECTS, "egypt", _doc(f"p{i}"))

    assert [d["id"] for d in await backend.load_all(PROJECTS, "egypt")] == [f"p{i}" for i in range(5)]


@pytest.mark.asyncio
async def test_concurrent_writers_do_not_lose_updates(data_dir):
    backend = JsonFileBackend(data_dir)

    await asyncio.gather(*(backend.insert(PROJECTS, "egypt", _doc(f"p{i}")) for i in range(25)))

    on_disk = json.loads((data_dir / "projects_egypt.json").read_text())
    assert len(on_disk) == 25


@pytest.mark.asyncio
async def test_concurrent_modifies_all_apply(data_dir):
    backend = JsonFileBackend(data_dir)
    await backend.insert(PROJECTS, "egypt", _doc("p1", counter=0))

    def bump(doc):
        return {**doc, "counter": doc["counter"] + 1}

    await asyncio.gather(*(backend.modify(PROJECTS, "egypt", "p1", bump) for _ in range(10)))

    assert (await backend.find(PROJECTS, "egypt", "p1"))["counter"] == 10


@pytest.mark.asyncio
async def test_modify_and_remove_missing_records(data_dir):
    backend = JsonFileBackend(data_dir)

    assert await backend.modify(PROJECTS, "egypt", "nope", lambda d: d) is None
    assert await backend.remove(PROJECTS, None, "nope") is False


@pytest.mark.asyncio
async def test_reload_rereads_disk(data_dir):
    backend = JsonFileBackend(data_dir)
    await backend.insert(PROJECTS, "egypt", _doc("p1"))

    (data_dir / "projects_egypt.json").write_text(json.dumps([_doc("p1"), _doc("p9")]))
    assert len(await backend.load_all(PROJECTS, "egypt")) == 1

    await backend.reload()
    assert len(await backend.load_all(PROJECTS, "egypt")) == 2


@pytest.mark.asyncio
async def test_returned_documents_are_copies(data_dir):
    backend = JsonFileBackend(data_dir)
    await backend.insert(PROJECTS, "egypt", _doc("p1", name="Tower"))

    doc = await backend.find(PROJECTS, "egypt", "p1")
    doc["name"] = "changed"

    assert (await backend.find(PROJECTS, "egypt", "p1"))["name"] == "Tower"


@pytest.mark.asyncio
async def test_write_failure_raises_and_keeps_memory_consistent(tmp_path):
    blocker = tmp_path / "data"
    blocker.write_text("a file where the directory should be")
    backend = JsonFileBackend(blocker)

    with pytest.raises(StorageError):
        await backend.insert(PROJECTS, "egypt", _doc("p1"))

    assert await backend.load_all(PROJECTS, "egypt") == []


@pytest.mark.asyncio
async def test_prepare_creates_every_partition(data_dir):
    backend = JsonFileBackend(data_dir)

    created = await backend.prepare(KIND_SPECS.values())

    assert sorted(created) == sorted([
        "projects_egypt.json", "projects_libya.json",
        "sections_egypt.json", "sections_libya.json",
        "employees_egypt.json", "employees_libya.json",
        "payments_egypt.json", "payments_libya.json",
        "inventory_egypt.json", "inventory_libya.json",
        "spendings.json", "users.json",
    ])
    assert await backend.prepare(KIND_SPECS.values()) == []
    assert await backend.ping() is True
