from __future__ import annotations

import random

import pytest

from advault.core.errors import GroupError, NotFoundError, ValidationError


def _all_rows(runtime):
    conn = runtime.connect()
    try:
        return conn.execute(
            "SELECT id, master_id, version_number, share_count FROM assets"
        ).fetchall()
    finally:
        conn.close()


def _assert_group_invariants(runtime):
    rows = {row["id"]: row for row in _all_rows(runtime)}
    for row in rows.values():
        assert row["version_number"] >= 1
        if row["master_id"] is None:
            assert row["version_number"] == 1
        else:
            master = rows[row["master_id"]]
            assert master["master_id"] is None


def _expected_accumulated(runtime, master_id):
    rows = _all_rows(runtime)
    master = next(row for row in rows if row["id"] == master_id)
    members = [row for row in rows if row["master_id"] == master_id]
    if not members and master["share_count"] is None:
        return None
    return (master["share_count"] or 0) + sum(row["share_count"] or 0 for row in members)


@pytest.fixture
def imported(assets, make_source):
    def _import(name, shares=None):
        asset = assets.import_file(make_source(name))
        if shares is not None:
            asset = assets.update(asset.id, {"share_count": shares})
        return asset

    return _import


def test_create_version_scenario(versions, assets, imported, make_source):
    master = imported("ad1.mp4", shares=100)
    assets.update(master.id, {"year": 2023, "advertiser": "Acme", "niche": "fitness"})

    version = versions.create_version(master.id, make_source("ad1_edit.mp4"))
    assert version.master_id == master.id
    assert version.version_number == 2
    assert (version.year, version.advertiser, version.niche) == (2023, "Acme", "fitness")
    assert version.share_count == 100

    assets.update(version.id, {"share_count": 500})
    assert versions.accumulated_shares(master.id) == 600
    assert versions.version_count(master.id) == 2

    promoted = versions.promote(version.id)
    assert promoted.master_id is None
    assert promoted.version_number == 1
    old_master = assets.get(master.id)
    assert old_master.master_id == version.id
    assert old_master.version_number == 2
    assert versions.accumulated_shares(version.id) == 600
    assert versions.version_count(version.id) == 2


def test_create_version_requires_master(versions, imported, make_source):
    master = imported("a.bin")
    other = imported("b.bin")
    versions.add_to_group(other.id, master.id)

    with pytest.raises(GroupError):
        versions.create_version(other.id, make_source("c.bin"))
    with pytest.raises(NotFoundError):
        versions.create_version(404, make_source("d.bin"))


def test_add_to_group_assigns_next_number(versions, imported):
    master = imported("m.bin")
    first = versions.add_to_group(imported("v1.bin").id, master.id)
    second = versions.add_to_group(imported("v2.bin").id, master.id)

    assert first.version_number == 2
    assert second.version_number == 3
    assert [a.id for a in versions.group_members(master.id)] == [
        master.id,
        second.id,
        first.id,
    ]


def test_add_to_group_numbers_are_monotonic_with_gaps(versions, imported):
    master = imported("m.bin")
    v2 = versions.add_to_group(imported("v2.bin").id, master.id)
    v3 = versions.add_to_group(imported("v3.bin").id, master.id)
    versions.remove_from_group(v2.id)

    v4 = versions.add_to_group(imported("v4.bin").id, master.id)
    assert v3.version_number == 3
    assert v4.version_number == 4


@pytest.mark.parametrize("case", ["self", "version_candidate", "version_target", "missing"])
def test_add_to_group_rejections(versions, imported, case):
    master = imported("m.bin")
    member = imported("v.bin")
    versions.add_to_group(member.id, master.id)
    loose = imported("loose.bin")

    if case == "self":
        with pytest.raises(GroupError):
            versions.add_to_group(loose.id, loose.id)
    elif case == "version_candidate":
        with pytest.raises(GroupError):
            versions.add_to_group(member.id, loose.id)
    elif case == "version_target":
        with pytest.raises(GroupError):
            versions.add_to_group(loose.id, member.id)
    else:
        with pytest.raises(NotFoundError):
            versions.add_to_group(loose.id, 9999)


def test_adding_a_master_with_versions_moves_its_group(runtime, versions, imported):
    target = imported("target.bin", shares=1)
    other = imported("other.bin", shares=10)
    child_a = versions.add_to_group(imported("a.bin", shares=100).id, other.id)
    child_b = versions.add_to_group(imported("b.bin", shares=1000).id, other.id)

    moved = versions.add_to_group(other.id, target.id)

    assert moved.master_id == target.id
    members = versions.group_members(target.id)
    numbers = {a.id: a.version_number for a in members[1:]}
    assert numbers == {other.id: 2, child_a.id: 3, child_b.id: 4}
    assert versions.accumulated_shares(target.id) == 1111
    assert versions.version_count(target.id) == 4
    _assert_group_invariants(runtime)


def test_remove_then_add_restores_aggregates(versions, imported):
    master = imported("m.bin", shares=10)
    version = versions.add_to_group(imported("v.bin", shares=5).id, master.id)
    before = (versions.version_count(master.id), versions.accumulated_shares(master.id))

    detached = versions.remove_from_group(version.id)
    assert (detached.master_id, detached.version_number) == (None, 1)
    assert versions.version_count(master.id) == 1
    assert versions.accumulated_shares(master.id) == 10

    versions.add_to_group(version.id, master.id)
    assert (versions.version_count(master.id), versions.accumulated_shares(master.id)) == before


def test_remove_from_group_requires_version(versions, imported):
    master = imported("m.bin")
    with pytest.raises(GroupError):
        versions.remove_from_group(master.id)


def test_promote_round_trip_restores_master(assets, versions, imported):
    master = imported("m.bin", shares=1)
    v2 = versions.add_to_group(imported("v2.bin", shares=2).id, master.id)
    v3 = versions.add_to_group(imported("v3.bin", shares=3).id, master.id)

    versions.promote(v2.id)
    assert {a.id for a in versions.group_members(v2.id)} == {master.id, v2.id, v3.id}
    assert assets.get(master.id).version_number == 4
    assert assets.get(v3.id).version_number == 3

    versions.promote(master.id)
    assert assets.get(master.id).master_id is None
    assert {a.id for a in versions.group_members(master.id)} == {master.id, v2.id, v3.id}
    assert versions.accumulated_shares(master.id) == 6


def test_promote_requires_version(versions, imported):
    master = imported("m.bin")
    with pytest.raises(GroupError):
        versions.promote(master.id)


def test_deleting_master_leaves_standalone_masters(assets, versions, imported):
    master = imported("m.bin")
    members = [
        versions.add_to_group(imported(f"v{i}.bin").id, master.id) for i in range(3)
    ]

    assets.remove_asset(master.id)

    for member in members:
        standalone = assets.get(member.id)
        assert standalone.master_id is None
        assert standalone.version_number == 1
    assert {a.id for a in assets.list_masters()} == {m.id for m in members}


def test_accumulated_shares_null_convention(assets, versions, imported):
    lonely = imported("lonely.bin")
    assert versions.accumulated_shares(lonely.id) is None

    master = imported("m.bin")
    version = versions.add_to_group(imported("v.bin").id, master.id)
    assert versions.accumulated_shares(master.id) == 0

    assets.update(version.id, {"share_count": 7})
    assert versions.accumulated_shares(master.id) == 7


def test_random_grouping_sequences_keep_invariants(runtime, assets, versions, imported):
    rng = random.Random(1234)
    ids = [imported(f"a{i}.bin", shares=rng.choice([None, 0, 5, 20])).id for i in range(8)]

    for _ in range(60):
        op = rng.choice(["add", "remove", "promote"])
        a, b = rng.sample(ids, 2)
        try:
            if op == "add":
                versions.add_to_group(a, b)
            elif op == "remove":
                versions.remove_from_group(a)
            else:
                versions.promote(a)
        except (GroupError, ValidationError):
            pass
        _assert_group_invariants(runtime)

    for master in assets.list_masters():
        assert versions.accumulated_shares(master.id) == _expected_accumulated(
            runtime, master.id
        )


def _group_snapshot(runtime):
    return sorted(
        (row["id"], row["master_id"], row["version_number"]) for row in _all_rows(runtime)
    )


def test_promote_failure_leaves_group_untouched(runtime, versions, imported, monkeypatch):
    master = imported("m.bin")
    v2 = versions.add_to_group(imported("v2.bin").id, master.id)
    versions.add_to_group(imported("v3.bin").id, master.id)
    before = _group_snapshot(runtime)

    def _fail(conn, master_id):
        raise RuntimeError("disk went away")

    # the promoted row and its siblings are already rewritten when this runs
    monkeypatch.setattr(versions, "next_version_number", _fail)
    with pytest.raises(RuntimeError):
        versions.promote(v2.id)

    assert _group_snapshot(runtime) == before
    _assert_group_invariants(runtime)


def test_add_to_group_failure_does_not_split_moved_versions(
    runtime, versions, imported, monkeypatch
):
    target = imported("target.bin")
    other = imported("other.bin")
    versions.add_to_group(imported("a.bin").id, other.id)
    versions.add_to_group(imported("b.bin").id, other.id)
    before = _group_snapshot(runtime)

    real_load = versions.load_asset
    calls = []

    def _fail_after_moves(conn, asset_id):
        calls.append(asset_id)
        # two master checks, then the final reload once every row is re-pointed
        if len(calls) == 3:
            raise RuntimeError("disk went away")
        return real_load(conn, asset_id)

    monkeypatch.setattr(versions, "load_asset", _fail_after_moves)
    with pytest.raises(RuntimeError):
        versions.add_to_group(other.id, target.id)

    assert len(calls) == 3
    assert _group_snapshot(runtime) == before
    _assert_group_invariants(runtime)
