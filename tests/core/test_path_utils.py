from pathlib import Path

from medialib_backend import path_utils
from medialib_backend.utils import parse_asset_id, parse_bool, split_csv


def test_normalize_path_rejects_null_byte() -> None:
    assert path_utils.normalize_path("abc\x00def") is None
    assert path_utils.normalize_path("") is None


def test_safe_rel_path_rejects_unsafe_inputs() -> None:
    assert path_utils.safe_rel_path(None) == Path("")
    assert path_utils.safe_rel_path("") == Path("")
    assert path_utils.safe_rel_path("../x") is None
    assert path_utils.safe_rel_path("a/../../x") is None
    assert path_utils.safe_rel_path("a\\..\\x") is None
    assert path_utils.safe_rel_path("C:/abs/path") is None
    assert path_utils.safe_rel_path("/etc/passwd") is None
    assert path_utils.safe_rel_path("\\\\server\\share\\x") is None
    assert path_utils.safe_rel_path("bad\x00name") is None
    assert path_utils.safe_rel_path("ok/sub") == Path("ok/sub")


def test_is_within_root_for_existing_paths(tmp_path: Path) -> None:
    root = tmp_path / "root"
    child = root / "a" / "b.txt"
    child.parent.mkdir(parents=True)
    child.write_text("x", encoding="utf-8")
    assert path_utils.is_within_root(child, root)

    outside = tmp_path / "outside.txt"
    outside.write_text("y", encoding="utf-8")
    assert not path_utils.is_within_root(outside, root)


def test_is_within_root_for_missing_candidate(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    assert path_utils.is_within_root(root / "not" / "there.png", root)
    assert not path_utils.is_within_root(root / ".." / "there.png", root)
    assert not path_utils.is_within_root(root / "x", tmp_path / "missing-root")


def test_parse_bool_and_asset_id() -> None:
    assert parse_bool("yes") is True
    assert parse_bool("off", True) is False
    assert parse_bool("maybe", True) is True
    assert parse_asset_id(5) == 5
    assert parse_asset_id(" 12 ") == 12
    assert parse_asset_id("abc") is None
    assert parse_asset_id(True) is None
    assert parse_asset_id(0) is None
    assert parse_asset_id(None) is None


def test_split_csv() -> None:
    assert split_csv("/api, /static ,,") == ("/api", "/static")
    assert split_csv("") == ()
