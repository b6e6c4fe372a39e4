from __future__ import annotations

import zipfile
from pathlib import Path

from httpx import AsyncClient


async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "environment": "test"}


async def test_category_crud_and_conflicts(client: AsyncClient) -> None:
    created = await client.post("/categories", json={"name": "Tools"})
    assert created.status_code == 201
    tools = created.json()
    assert tools["parent_id"] == 0

    child = await client.post("/categories", json={"name": "Hand", "parent_id": tools["id"]})
    assert child.status_code == 201

    duplicate = await client.post("/categories", json={"name": "Tools"})
    assert duplicate.status_code == 409
    assert duplicate.json()["kind"] == "InvalidArgument"

    grandchild = await client.post(
        "/categories", json={"name": "Deep", "parent_id": child.json()["id"]}
    )
    assert grandchild.status_code == 400

    children = await client.get("/categories", params={"parent_id": tools["id"]})
    assert [category["name"] for category in children.json()] == ["Hand"]

    renamed = await client.put(f"/categories/{tools['id']}", json={"name": "Workshop"})
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Workshop"

    deleted = await client.delete(f"/categories/{tools['id']}")
    assert deleted.status_code == 204
    assert (await client.get(f"/categories/{tools['id']}")).status_code == 404
    assert (await client.get("/categories")).json() == []


async def test_location_crud(client: AsyncClient) -> None:
    created = await client.post("/locations", json={"name": "Attic", "remark": "dusty"})
    assert created.status_code == 201
    location_id = created.json()["id"]

    item = await client.post("/items", json={"name": "Fan", "location_id": location_id})
    updated = await client.put(f"/locations/{location_id}", json={"remark": "clean"})
    assert updated.json()["remark"] == "clean"
    assert updated.json()["name"] == "Attic"

    assert (await client.post("/locations", json={"name": "Attic"})).status_code == 409
    assert (await client.delete(f"/locations/{location_id}")).status_code == 204

    fan = await client.get(f"/items/{item.json()['id']}")
    assert fan.json()["location_id"] == 0


async def test_item_endpoints(client: AsyncClient) -> None:
    created = await client.post(
        "/items",
        json={"name": "Battery", "count": 12, "image_paths": ["/img/a.png"], "valid_time": 1000},
    )
    assert created.status_code == 201
    battery = created.json()
    assert battery["uuid"]
    assert battery["image_paths"] == ["/img/a.png"]
    assert battery["is_deleted"] is False
    await client.post("/items", json={"name": "Charger", "count": 1})

    filtered = await client.get("/items", params={"keyword": "Batt", "quantity_min": 10})
    assert [item["name"] for item in filtered.json()] == ["Battery"]

    expired = await client.get("/items/expired")
    assert [item["name"] for item in expired.json()] == ["Battery"]

    updated = await client.put(f"/items/{battery['id']}", json={"count": 11})
    assert updated.json()["count"] == 11

    assert (await client.get("/items/424242")).status_code == 404
    assert (await client.post("/items", json={"name": "Bad", "count": -1})).status_code == 422


async def test_recycle_flow_over_http(client: AsyncClient) -> None:
    first = (await client.post("/items", json={"name": "Mug"})).json()
    second = (await client.post("/items", json={"name": "Plate"})).json()

    assert (await client.delete(f"/items/{first['id']}", params={"reason": "chipped"})).status_code == 204
    await client.delete(f"/items/{second['id']}")

    assert (await client.get(f"/items/{first['id']}")).status_code == 404
    listed = (await client.get("/items")).json()
    assert listed == []

    bin_records = (await client.get("/recycle")).json()
    assert {record["item_name"] for record in bin_records} == {"Mug", "Plate"}
    by_item = {record["item_id"]: record for record in bin_records}
    assert by_item[first["id"]]["delete_reason"] == "chipped"

    mismatched = await client.post(
        "/recycle/restore", json={"recycle_ids": [by_item[first["id"]]["id"]], "item_ids": []}
    )
    assert mismatched.status_code == 400
    assert mismatched.json()["kind"] == "InvalidArgument"

    restored = await client.post(
        "/recycle/restore",
        json={"recycle_ids": [by_item[first["id"]]["id"]], "item_ids": [first["id"]]},
    )
    assert restored.json() == {"count": 1}

    single = await client.post(f"/items/{second['id']}/restore")
    assert single.json() == {"count": 1}
    assert (await client.get("/recycle")).json() == []


async def test_delete_forever_and_purge(client: AsyncClient) -> None:
    doomed = (await client.post("/items", json={"name": "Old lamp"})).json()
    purged = (await client.post("/items", json={"name": "Old rug"})).json()
    await client.delete(f"/items/{doomed['id']}")
    await client.delete(f"/items/{purged['id']}")
    by_item = {record["item_id"]: record["id"] for record in (await client.get("/recycle")).json()}

    forever = await client.post(
        "/recycle/delete-forever",
        json={"recycle_ids": [by_item[doomed["id"]]], "item_ids": [doomed["id"]]},
    )
    assert forever.json() == {"count": 1}

    purge = await client.post("/recycle/purge", json={"item_ids": [purged["id"]]})
    assert purge.json() == {"count": 1}
    assert (await client.get("/recycle")).json() == []


async def test_archive_endpoints(client: AsyncClient, service) -> None:
    await client.post("/locations", json={"name": "Basement"})
    await client.post("/items", json={"name": "Toolbox"})
    destination = service.settings.archive_dir.resolve() / "nightly" / "http-export.zip"

    exported = await client.post(
        "/archive/export", json={"destination": "nightly/http-export.zip"}
    )
    assert exported.json() == {"success": True, "destination": str(destination)}
    assert zipfile.is_zipfile(destination)

    imported = await client.post(
        "/archive/import", json={"archive_path": "nightly/http-export.zip"}
    )
    assert imported.status_code == 200
    assert imported.json()["inserted_count"] == 0


async def test_archive_paths_outside_archive_dir_are_rejected(
    client: AsyncClient, service, tmp_path: Path
) -> None:
    victim = tmp_path / "elsewhere" / "important.txt"
    victim.parent.mkdir()
    victim.write_text("keep me")

    for raw in (str(victim), "../elsewhere/important.txt", "."):
        exported = await client.post("/archive/export", json={"destination": raw})
        assert exported.status_code == 400
        assert exported.json()["kind"] == "InvalidArgument"

    imported = await client.post("/archive/import", json={"archive_path": str(victim)})
    assert imported.status_code == 400
    assert victim.read_text() == "keep me"


async def test_import_of_invalid_archive_is_unprocessable(client: AsyncClient, service) -> None:
    archive_dir = service.settings.archive_dir
    archive_dir.mkdir(parents=True, exist_ok=True)
    (archive_dir / "bogus.zip").write_text("definitely not a zip")

    response = await client.post("/archive/import", json={"archive_path": "bogus.zip"})

    assert response.status_code == 422
    assert response.json()["kind"] == "InvalidArchive"
