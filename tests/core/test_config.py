from medialib_backend import config


def test_env_int_parses_and_clamps(monkeypatch):
    monkeypatch.setenv("MLIB_TEST_INT", "7")
    assert config._env_int(1, "MLIB_TEST_INT", min_value=1, max_value=10) == 7

    monkeypatch.setenv("MLIB_TEST_INT", "500")
    assert config._env_int(1, "MLIB_TEST_INT", min_value=1, max_value=10) == 10

    monkeypatch.setenv("MLIB_TEST_INT", "-3")
    assert config._env_int(1, "MLIB_TEST_INT", min_value=1, max_value=10) == 1

    monkeypatch.setenv("MLIB_TEST_INT", "lots")
    assert config._env_int(4, "MLIB_TEST_INT") == 4

    monkeypatch.delenv("MLIB_TEST_INT")
    assert config._env_int(4, "MLIB_TEST_INT") == 4


def test_env_float_and_bool(monkeypatch):
    monkeypatch.setenv("MLIB_TEST_FLOAT", "2.5")
    assert config._env_float(1.0, "MLIB_TEST_FLOAT") == 2.5
    monkeypatch.setenv("MLIB_TEST_FLOAT", "nan-ish")
    assert config._env_float(1.0, "MLIB_TEST_FLOAT") == 1.0

    monkeypatch.setenv("MLIB_TEST_BOOL", "off")
    assert config._env_bool(True, "MLIB_TEST_BOOL") is False
    monkeypatch.delenv("MLIB_TEST_BOOL")
    assert config._env_bool(True, "MLIB_TEST_BOOL") is True


def test_env_raw_skips_blank_values(monkeypatch):
    monkeypatch.setenv("MLIB_TEST_A", "   ")
    monkeypatch.setenv("MLIB_TEST_B", " value ")
    assert config._env_raw("MLIB_TEST_A", "MLIB_TEST_B") == "value"
    assert config._env_raw("MLIB_TEST_MISSING", default="d") == "d"


def test_defaults_are_sane():
    assert config.PAGE_MAX_LIMIT >= 1
    assert config.DB_MAX_CONNECTIONS >= 1
    assert config.UPLOADS_PREFIX
    assert all(p for p in config.INTERNAL_PREFIXES)


def test_initialize_directories(tmp_path):
    target = tmp_path / "a" / "b" / "media.sqlite"
    config.initialize_directories(str(target))
    assert target.parent.is_dir()
    # Existing directory is fine.
    config.initialize_directories(str(target))
