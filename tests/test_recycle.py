from __future__ import annotations

import pytest

from conftest import add_item, assert_recycle_consistent, load_item, recycle_records
from stockkeeper import crud
from stockkeeper.exceptions import ErrorKind, InvalidArgumentError
from stockkeeper.models import RecycleRecord


async def test_soft_delete_creates_record_and_flags_item(service) -> None:
    item = await add_item(service, "Stapler", count=2)

    await service.soft_delete(item.id, reason="broken")

    stored = await load_item(service, item.id)
    assert stored.is_deleted is True
    records = await recycle_records(service)
    assert len(records) == 1
    record = records[0]
    assert record.item_id == item.id
    assert record.item_uuid == item.uuid
    assert record.item_name == "Stapler"
    assert record.delete_reason == "broken"
    await assert_recycle_consistent(service)


async def test_soft_delete_missing_or_repeated_is_noop(service) -> None:
    item = await add_item(service, "Tape")

    await service.soft_delete(9999)
    await service.soft_delete(item.id)
    await service.soft_delete(item.id)

    assert len(await recycle_records(service)) == 1
    await assert_recycle_consistent(service)


async def test_restore_one(service) -> None:
    item = await add_item(service, "Glue")
    await service.soft_delete(item.id)

    assert await service.restore_one(item.id) == 1

    stored = await load_item(service, item.id)
    assert stored.is_deleted is False
    assert await recycle_records(service) == []


async def test_restore_one_on_live_or_missing_item_returns_zero(service) -> None:
    item = await add_item(service, "Pens")

    assert await service.restore_one(item.id) == 0
    assert await service.restore_one(4242) == 0


async def test_restore_batch_skips_mismatched_pair(service) -> None:
    first = await add_item(service, "First")
    untouched = await add_item(service, "Untouched")
    other = await add_item(service, "Other")
    await service.soft_delete(first.id)
    await service.soft_delete(other.id)
    first_record, other_record = await recycle_records(service)

    restored = await service.restore_batch(
        [first_record.id, other_record.id], [first.id, untouched.id]
    )

    assert restored == 1
    assert (await load_item(service, first.id)).is_deleted is False
    assert (await load_item(service, untouched.id)).is_deleted is False
    assert (await load_item(service, other.id)).is_deleted is True
    remaining = await recycle_records(service)
    assert [record.id for record in remaining] == [other_record.id]
    await assert_recycle_consistent(service)


@pytest.mark.parametrize(
    ("recycle_ids", "item_ids"),
    [(None, [1]), ([1], None), ([], []), ([1, 2], [1])],
)
async def test_restore_batch_rejects_bad_arguments(service, recycle_ids, item_ids) -> None:
    item = await add_item(service, "Folder")
    await service.soft_delete(item.id)

    with pytest.raises(InvalidArgumentError) as excinfo:
        await service.restore_batch(recycle_ids, item_ids)

    assert excinfo.value.kind is ErrorKind.INVALID_ARGUMENT
    assert (await load_item(service, item.id)).is_deleted is True
    assert len(await recycle_records(service)) == 1


async def test_restore_batch_skips_items_that_are_not_deleted(service) -> None:
    item = await add_item(service, "Ruler")
    async with service.session() as session:
        session.add(RecycleRecord(item_id=item.id, item_uuid=item.uuid, item_name=item.name))
        await session.commit()
    (record,) = await recycle_records(service)

    assert await service.restore_batch([record.id], [item.id]) == 0
    assert (await load_item(service, item.id)).is_deleted is False


async def test_restore_batch_compensates_when_record_delete_writes_nothing(
    service, monkeypatch
) -> None:
    kept = await add_item(service, "Kept in bin")
    restored_item = await add_item(service, "Restored")
    await service.soft_delete(kept.id)
    await service.soft_delete(restored_item.id)
    kept_record, restored_record = await recycle_records(service)

    real_delete = crud.delete_recycle_record

    async def flaky_delete(session, recycle_id):
        if recycle_id == kept_record.id:
            return 0
        return await real_delete(session, recycle_id)

    monkeypatch.setattr(crud, "delete_recycle_record", flaky_delete)

    restored = await service.restore_batch(
        [kept_record.id, restored_record.id], [kept.id, restored_item.id]
    )

    assert restored == 1
    assert (await load_item(service, kept.id)).is_deleted is True
    assert (await load_item(service, restored_item.id)).is_deleted is False
    assert [record.id for record in await recycle_records(service)] == [kept_record.id]
    await assert_recycle_consistent(service)


async def test_restore_batch_compensates_when_record_delete_raises(service, monkeypatch) -> None:
    item = await add_item(service, "Cable")
    await service.soft_delete(item.id)
    (record,) = await recycle_records(service)

    async def broken_delete(session, recycle_id):
        raise RuntimeError("disk unavailable")

    monkeypatch.setattr(crud, "delete_recycle_record", broken_delete)

    assert await service.restore_batch([record.id], [item.id]) == 0
    assert (await load_item(service, item.id)).is_deleted is True
    assert len(await recycle_records(service)) == 1


async def test_restore_batch_continues_after_pair_error(service, monkeypatch) -> None:
    first = await add_item(service, "Lamp")
    second = await add_item(service, "Bulb")
    await service.soft_delete(first.id)
    await service.soft_delete(second.id)
    first_record, second_record = await recycle_records(service)

    real_get = crud.get_recycle_record

    async def exploding_get(session, recycle_id):
        if recycle_id == first_record.id:
            raise RuntimeError("boom")
        return await real_get(session, recycle_id)

    monkeypatch.setattr(crud, "get_recycle_record", exploding_get)

    restored = await service.restore_batch(
        [first_record.id, second_record.id], [first.id, second.id]
    )

    assert restored == 1
    assert (await load_item(service, first.id)).is_deleted is True
    assert (await load_item(service, second.id)).is_deleted is False


async def test_purge_leaves_record_for_caller(service) -> None:
    first = await add_item(service, "Old box")
    second = await add_item(service, "Old bag")
    await service.soft_delete(first.id)
    await service.soft_delete(second.id)

    assert await service.purge_one(first.id) == 1
    assert await service.purge_batch([second.id, 777]) == 1
    assert await service.purge_batch([]) == 0

    assert await load_item(service, first.id) is None
    assert len(await recycle_records(service)) == 2
    assert await service.reconcile() == 2
    await assert_recycle_consistent(service)


async def test_delete_forever_removes_item_and_record(service) -> None:
    item = await add_item(service, "Broken chair")
    other = await add_item(service, "Spare chair")
    await service.soft_delete(item.id)
    await service.soft_delete(other.id)
    record, other_record = await recycle_records(service)

    purged = await service.delete_forever_batch([record.id, other_record.id], [item.id, item.id])

    assert purged == 1
    assert await load_item(service, item.id) is None
    assert [r.id for r in await recycle_records(service)] == [other_record.id]
    await assert_recycle_consistent(service)


async def test_list_recycle_bin_newest_first_and_drops_orphans(service) -> None:
    first = await add_item(service, "Earlier")
    second = await add_item(service, "Later")
    live = await add_item(service, "Live")
    await service.soft_delete(first.id)
    await service.soft_delete(second.id)
    async with service.session() as session:
        session.add(RecycleRecord(item_id=live.id, item_uuid=live.uuid, item_name=live.name))
        await session.commit()

    records = await service.list_recycle_bin()

    assert [record.item_name for record in records] == ["Later", "Earlier"]
    await assert_recycle_consistent(service)


async def test_lifecycle_sequence_keeps_bin_consistent(service) -> None:
    items = [await add_item(service, f"Part {index}") for index in range(5)]
    for item in items:
        await service.soft_delete(item.id)
    await service.restore_one(items[0].id)
    records = {record.item_id: record.id for record in await recycle_records(service)}
    await service.restore_batch(
        [records[items[1].id], records[items[2].id]], [items[1].id, items[3].id]
    )
    await service.delete_forever_batch([records[items[4].id]], [items[4].id])
    await service.soft_delete(items[0].id)

    await assert_recycle_consistent(service)
