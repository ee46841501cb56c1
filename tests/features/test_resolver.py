import re

import pytest

from medialib_backend.features.media.models import MediaAsset
from medialib_backend.features.media.resolver import build_identity_pattern, build_predicates


def test_build_predicates_ranks_exact_before_pattern():
    preds = build_predicates("http://h/api/img/a.png")
    kinds = [p.kind for p in preds]
    assert kinds[-1] == "pattern"
    assert all(k == "exact" for k in kinds[:-1])
    assert [p.rank for p in preds] == list(range(len(preds)))
    assert preds[0].value == "http://h/api/img/a.png"
    assert {"/img/a.png", "img/a.png"} <= {p.value for p in preds}


def test_build_predicates_empty():
    assert build_predicates("") == []
    assert build_predicates(None) == []


@pytest.mark.parametrize(
    "stored",
    ["/img/a.png", "img/a.png", "/IMG/A.PNG", "http://host/img/a.png", "https://h:8080/api/img/a.png?x=1", "/api/img/a.png#f"],
)
def test_identity_pattern_accepts_legacy_forms(stored):
    assert re.search(build_identity_pattern("/img/a.png"), stored)


@pytest.mark.parametrize(
    "stored",
    ["/other/img/a.png", "/img/a.png.bak", "/img/a_png", "/img/xa.png", "/apix/img/a.png"],
)
def test_identity_pattern_rejects_other_paths(stored):
    assert not re.search(build_identity_pattern("/img/a.png"), stored)


def test_identity_pattern_escapes_metacharacters():
    pattern = build_identity_pattern("/a+(b).png")
    assert re.search(pattern, "/a+(b).png")
    assert not re.search(pattern, "/aa(b)xpng")


@pytest.mark.asyncio
async def test_repository_prefers_exact_over_pattern(services):
    repo = services["media"].repo
    now = "2025-01-01T00:00:00.000Z"
    legacy = await repo.insert(MediaAsset(url="http://old-host/IMG/A.png", created_at=now))
    exact = await repo.insert(MediaAsset(url="/img/a.png", created_at=now))
    assert legacy.ok and exact.ok

    found = await repo.find_one(build_predicates("/img/a.png"))
    assert found.ok
    assert found.data.id == exact.data.id

    await repo.delete(exact.data.id)
    fallback = await repo.find_one(build_predicates("/img/a.png"))
    assert fallback.data.id == legacy.data.id
    assert fallback.meta["match_rank"] == len(build_predicates("/img/a.png")) - 1


@pytest.mark.asyncio
async def test_other_mounts_resolve_only_when_configured(services):
    from medialib_backend.features.media.service import MediaService

    default_media = services["media"]
    now = "2025-01-01T00:00:00.000Z"
    legacy = await default_media.repo.insert(MediaAsset(url="/public/uploads/images/x.png", created_at=now))
    assert legacy.ok, legacy.error

    # A different mount point is a different path unless declared as a routing prefix.
    assert (await default_media.find_by_url("/uploads/images/x.png")).data is None

    mounted = MediaService(
        services["db"],
        deletion_guard=default_media.deletion_guard,
        internal_prefixes=("/api", "/public"),
    )
    found = await mounted.find_by_url("/uploads/images/x.png")
    assert found.ok, found.error
    assert found.data.id == legacy.data.id

    merged = await mounted.create({"type": "image", "url": "/uploads/images/x.png", "filename": "x.png"})
    assert merged.ok, merged.error
    assert merged.meta["created"] is False
    assert merged.data.id == legacy.data.id
    assert (await mounted.count()).data == 1
