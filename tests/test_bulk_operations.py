from __future__ import annotations

import pytest

from advault.studio.core.bulk import BulkCoordinator


@pytest.fixture
def bulk(runtime) -> BulkCoordinator:
    return BulkCoordinator(runtime)


def test_bulk_update_with_missing_id(bulk, assets, make_source):
    valid = assets.import_file(make_source("a.bin"))

    result = bulk.bulk_update([valid.id, 9999], {"year": 2020, "shares": 12})

    assert result.updated_count == 1
    assert result.errors == [{"id": 9999, "error": "Asset 9999 not found."}]
    updated = assets.get(valid.id)
    assert (updated.year, updated.share_count) == (2020, 12)


def test_bulk_update_with_invalid_payload_touches_nothing(bulk, assets, make_source):
    first = assets.import_file(make_source("a.bin"))
    second = assets.import_file(make_source("b.bin"))

    result = bulk.bulk_update([first.id, second.id], {"master_id": first.id})

    assert result.updated_count == 0
    assert [entry["id"] for entry in result.errors] == [first.id, second.id]
    assert assets.get(second.id).master_id is None


def test_bulk_delete_cleans_up_each_asset(runtime, bulk, assets, make_source):
    doomed = [assets.import_file(make_source(f"{i}.txt")) for i in range(3)]

    result = bulk.bulk_delete([a.id for a in doomed] + [404])

    assert result.deleted_count == 3
    assert len(result.errors) == 1
    assert list(runtime.vault_root.iterdir()) == []


def test_bulk_add_to_group_collects_group_errors(bulk, assets, versions, make_source):
    master = assets.import_file(make_source("m.bin"))
    ok = assets.import_file(make_source("ok.bin"))
    already = assets.import_file(make_source("already.bin"))
    other_master = assets.import_file(make_source("other.bin"))
    versions.add_to_group(already.id, other_master.id)

    result = bulk.bulk_add_to_group([ok.id, already.id, master.id, 555], master.id)

    assert result.count == 1
    assert [entry["id"] for entry in result.errors] == [already.id, master.id, 555]
    assert assets.get(ok.id).master_id == master.id


def test_bulk_import_keys_errors_by_file_name(bulk, make_source, tmp_path):
    good = make_source("good.bin")
    missing = tmp_path / "nowhere" / "gone.mp4"

    result = bulk.bulk_import([good, missing])

    assert [asset.file_name for asset in result.imported] == ["good.bin"]
    assert len(result.errors) == 1
    assert result.errors[0]["file"] == "gone.mp4"
