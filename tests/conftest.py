import sys

import pytest_asyncio

from .repo_root import REPO_ROOT

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest_asyncio.fixture
async def services(tmp_path):
    from medialib_backend.deps import build_services

    public_dir = tmp_path / "public"
    (public_dir / "uploads" / "images").mkdir(parents=True)
    db_path = str(tmp_path / "test_services.db")
    svc_res = await build_services(db_path, public_dir=str(public_dir))
    assert svc_res.ok, svc_res.error
    svc = svc_res.data
    svc["public_dir"] = public_dir
    try:
        yield svc
    finally:
        await svc["db"].aclose()


@pytest_asyncio.fixture
async def media(services):
    return services["media"]
