import asyncio

import pytest

from medialib_shared import Result


async def _asset(media, url="/uploads/images/c.png", texts=None):
    res = await media.create({"type": "image", "url": url, "descriptions": texts or []})
    assert res.ok, res.error
    return res.data


async def _reload(media, asset_id):
    res = await media.get(asset_id)
    assert res.ok, res.error
    return res.data


def _assert_unique_ids(asset):
    ids = [d.id for d in asset.descriptions]
    assert len(ids) == len(set(ids))


@pytest.mark.asyncio
async def test_concurrent_add_description_keeps_every_text(media):
    asset = await _asset(media)

    results = await asyncio.gather(*[media.add_description(asset.id, f"t{i}") for i in range(5)])
    assert all(r.ok for r in results), [r.error for r in results]
    assert all(r.meta["added"] is True for r in results)

    stored = await _reload(media, asset.id)
    assert sorted(stored.description_texts()) == [f"t{i}" for i in range(5)]
    _assert_unique_ids(stored)


@pytest.mark.asyncio
async def test_concurrent_deduped_add_stores_text_once(media):
    asset = await _asset(media)

    results = await asyncio.gather(*[media.add_description(asset.id, "same", dedupe=True) for _ in range(5)])
    assert all(r.ok for r in results), [r.error for r in results]
    assert sum(1 for r in results if r.meta["added"]) == 1

    stored = await _reload(media, asset.id)
    assert stored.description_texts() == ["same"]


@pytest.mark.asyncio
async def test_concurrent_merges_into_existing_asset(media):
    asset = await _asset(media, texts=["base"])

    results = await asyncio.gather(
        *[
            media.create({"type": "image", "url": asset.url, "descriptions": [f"d{i}", "shared"]})
            for i in range(4)
        ]
    )
    assert all(r.ok for r in results), [r.error for r in results]
    assert all(r.meta["created"] is False for r in results)
    assert {r.data.id for r in results} == {asset.id}

    stored = await _reload(media, asset.id)
    texts = stored.description_texts()
    assert texts[0] == "base"
    assert sorted(texts[1:]) == ["d0", "d1", "d2", "d3", "shared"]
    _assert_unique_ids(stored)
    assert (await media.count()).data == 1


@pytest.mark.asyncio
async def test_concurrent_edit_and_append_both_survive(media):
    asset = await _asset(media, texts=["first", "second"])
    first, second = asset.descriptions

    results = await asyncio.gather(
        media.update_description(asset.id, first.id, "first-edited"),
        media.remove_description(asset.id, second.id),
        media.add_description(asset.id, "third"),
    )
    assert all(r.ok for r in results), [r.error for r in results]

    stored = await _reload(media, asset.id)
    assert stored.description_texts() == ["first-edited", "third"]
    assert stored.descriptions[0].id == first.id


@pytest.mark.asyncio
async def test_save_descriptions_racing_batch_append_is_serializable(media):
    asset = await _asset(media, texts=["base"])
    base = asset.descriptions[0]

    saved, batch = await asyncio.gather(
        media.save_descriptions(asset.id, [{"id": base.id, "text": "base"}, {"text": "from-save"}]),
        media.batch_add_descriptions([{"id": asset.id, "texts": ["a1", "a2"]}]),
    )
    assert saved.ok, saved.error
    assert batch.ok, batch.error
    assert batch.data["success_count"] == 1
    assert batch.data["succeeded"][0]["added_count"] == 2

    stored = await _reload(media, asset.id)
    texts = stored.description_texts()
    # Equivalent to running the reconcile before, between or after the two appends.
    assert texts[:2] == ["base", "from-save"]
    assert texts[2:] in (["a1", "a2"], ["a2"], [])
    assert stored.descriptions[0].id == base.id
    _assert_unique_ids(stored)


@pytest.mark.asyncio
async def test_save_descriptions_recomputes_after_interleaved_write(media, monkeypatch):
    asset = await _asset(media, texts=["keep", "drop"])
    keep = asset.descriptions[0]

    repo = media.repo
    real_save = repo.save_descriptions
    calls = {"n": 0}

    async def save_after_other_writer(asset_id, descriptions, *, expected_revision=None):
        calls["n"] += 1
        if calls["n"] == 1:
            other = await media.add_description(asset_id, "sneaked-in")
            assert other.ok, other.error
        return await real_save(asset_id, descriptions, expected_revision=expected_revision)

    monkeypatch.setattr(repo, "save_descriptions", save_after_other_writer)

    res = await media.save_descriptions(asset.id, [{"id": keep.id, "text": "kept"}, {"text": "new"}])
    assert res.ok, res.error
    assert calls["n"] == 2
    assert res.meta["changed"] is True
    assert res.data.description_texts() == ["kept", "new"]
    assert res.data.descriptions[0].id == keep.id


@pytest.mark.asyncio
async def test_save_descriptions_reports_conflict_when_never_current(media, monkeypatch):
    asset = await _asset(media, texts=["a"])

    async def always_stale(asset_id, descriptions, *, expected_revision=None):
        return Result.Ok(0)

    monkeypatch.setattr(media.repo, "save_descriptions", always_stale)

    res = await media.save_descriptions(asset.id, [{"text": "b"}])
    assert res.code == "CONFLICT"
    assert (await _reload(media, asset.id)).description_texts() == ["a"]
