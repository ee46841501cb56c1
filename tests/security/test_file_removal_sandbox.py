import os
from pathlib import Path

import pytest

from medialib_backend.adapters.fs.file_remover import UPLOAD_CATEGORIES, safe_remove_file
from medialib_backend.features.media.deletion import DeletionGuard


@pytest.fixture
def public_root(tmp_path: Path) -> Path:
    root = tmp_path / "public"
    (root / "uploads" / "images").mkdir(parents=True)
    (root / "uploads" / "images" / "ok.png").write_bytes(b"x")
    (root / "uploads" / "loose.png").write_bytes(b"x")
    (tmp_path / "secret.txt").write_text("s", encoding="utf-8")
    return root


def test_removes_file_inside_uploads(public_root: Path) -> None:
    res = safe_remove_file("uploads/images/ok.png", public_root)
    assert res.success, res.error
    assert res.resolved_path == str((public_root / "uploads" / "images" / "ok.png").resolve())
    assert not (public_root / "uploads" / "images" / "ok.png").exists()


@pytest.mark.parametrize(
    "rel",
    [
        "",
        "   ",
        "uploads/\x00evil.png",
        "../secret.txt",
        "uploads/../../secret.txt",
        "uploads\\..\\..\\secret.txt",
        "/etc/passwd",
        "C:/Windows/win.ini",
        "\\\\server\\share\\x.png",
    ],
)
def test_rejects_unsafe_paths(public_root: Path, rel: str) -> None:
    res = safe_remove_file(rel, public_root)
    assert not res.success
    assert res.error
    assert (public_root.parent / "secret.txt").exists()


def test_requires_uploads_prefix(public_root: Path) -> None:
    (public_root / "top.png").write_bytes(b"x")
    res = safe_remove_file("top.png", public_root)
    assert not res.success
    assert (public_root / "top.png").exists()

    relaxed = safe_remove_file("top.png", public_root, require_uploads_prefix=False)
    assert relaxed.success


def test_uploads_directory_itself_is_not_removable(public_root: Path) -> None:
    res = safe_remove_file("uploads", public_root)
    assert not res.success
    assert (public_root / "uploads").is_dir()


def test_category_requirement(public_root: Path) -> None:
    loose = safe_remove_file("uploads/loose.png", public_root, require_category=True)
    assert not loose.success
    assert (public_root / "uploads" / "loose.png").exists()

    categorized = safe_remove_file("uploads/images/ok.png", public_root, require_category=True)
    assert categorized.success

    assert {"image", "images", "video", "videos", "other", "others"} <= UPLOAD_CATEGORIES


def test_missing_file_and_directory(public_root: Path) -> None:
    missing = safe_remove_file("uploads/images/none.png", public_root)
    assert not missing.success
    assert missing.error == "File not found"

    directory = safe_remove_file("uploads/images", public_root)
    assert not directory.success
    assert directory.error == "Not a regular file"


def test_missing_root(tmp_path: Path) -> None:
    res = safe_remove_file("uploads/a.png", tmp_path / "nope")
    assert not res.success


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_symlink_escaping_root_is_rejected(public_root: Path) -> None:
    link = public_root / "uploads" / "images" / "link.txt"
    try:
        os.symlink(public_root.parent / "secret.txt", link)
    except OSError:
        pytest.skip("cannot create symlinks here")
    res = safe_remove_file("uploads/images/link.txt", public_root)
    assert not res.success
    assert (public_root.parent / "secret.txt").exists()


def test_deletion_guard_resolves_locators(public_root: Path) -> None:
    guard = DeletionGuard(public_root, require_uploads_prefix=True, require_category=False)
    assert guard.file_path_for("https://cdn.example.com/api/uploads/images/ok.png?v=9") == "uploads/images/ok.png"

    removed = guard.remove_backing_file("https://cdn.example.com/api/uploads/images/ok.png?v=9")
    assert removed.ok
    assert removed.data.success

    escaped = guard.remove_backing_file("/api/../secret.txt")
    assert not escaped.ok
    assert escaped.code == "DELETE_FAILED"
    assert escaped.meta["removal"].success is False
    assert (public_root.parent / "secret.txt").exists()
