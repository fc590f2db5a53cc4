from __future__ import annotations

import logging

import pytest

from ccg_webapi.utils.config import (
    build_hierarchical_tree,
    load_environment_settings,
    lookup_hierarchical_value,
    parse_bool,
    split_env_list,
)
from ccg_webapi.utils.lifecycle import ShutdownRegistry


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    # Setting first makes monkeypatch restore the variable even when the
    # loader exports it from a .env file during the test.
    for key in ("APP_ENV", "FLASK_ENV", "JWTTOKENCONFIG__SECRET", "JWTTOKENCONFIG__ISSUER", "CACHE_BACKEND"):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def test_layered_env_files_later_files_win(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("CACHE_BACKEND=memory\nJWTTOKENCONFIG__ISSUER=base\n", encoding="utf-8")
    (tmp_path / ".env.staging").write_text("JWTTOKENCONFIG__ISSUER=staging\n", encoding="utf-8")
    monkeypatch.setenv("APP_ENV", "staging")

    settings = load_environment_settings(project_root=tmp_path)

    assert settings.name == "staging"
    assert settings.loaded_files == (str(tmp_path / ".env"), str(tmp_path / ".env.staging"))
    assert settings.get_section("jwtTokenConfig")["ISSUER"] == "staging"
    assert settings.get("CACHE_BACKEND") == "memory"


def test_real_environment_overrides_files(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("JWTTOKENCONFIG__SECRET=from-file\n", encoding="utf-8")
    monkeypatch.setenv("JWTTOKENCONFIG__SECRET", "from-env")

    settings = load_environment_settings(project_root=tmp_path)

    assert settings.get_section("JWTTOKENCONFIG") == {"SECRET": "from-env"}


def test_environment_defaults_to_production(tmp_path):
    settings = load_environment_settings(project_root=tmp_path)

    assert settings.name == "production"
    assert settings.loaded_files == ()
    assert settings.get_section("jwtTokenConfig") == {}


def test_hierarchical_tree_and_lookup():
    tree = build_hierarchical_tree(
        {
            "JWTTOKENCONFIG__SECRET": "s3cret",
            "jwtTokenConfig__Issuer": "ccg",
            "CACHE__REDIS__URL": "redis://cache:6379/0",
            "PLAIN": "ignored",
        }
    )

    assert tree["JWTTOKENCONFIG"] == {"SECRET": "s3cret", "ISSUER": "ccg"}
    assert "PLAIN" not in tree
    assert lookup_hierarchical_value(tree, "CACHE_REDIS_URL") == "redis://cache:6379/0"
    assert lookup_hierarchical_value(tree, "CACHE_REDIS") is None
    assert lookup_hierarchical_value(tree, "") is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("true", True), ("On", True), ("1", True), ("no", False), ("", False), (None, True)],
)
def test_parse_bool(raw, expected):
    assert parse_bool(raw, default=True) is expected


def test_split_env_list():
    assert split_env_list(" a, ,b ,c") == ["a", "b", "c"]
    assert split_env_list(None) == []


def test_shutdown_registry_runs_callbacks_once_in_reverse_order(caplog):
    calls = []
    registry = ShutdownRegistry()
    registry.add("first", lambda: calls.append("first"))
    registry.add("broken", lambda: 1 / 0)
    registry.add("last", lambda: calls.append("last"))
    logger = logging.getLogger("tests.shutdown")

    with caplog.at_level(logging.ERROR, logger="tests.shutdown"):
        registry.fire(logger=logger)
        registry.fire(logger=logger)

    assert calls == ["last", "first"]
    assert registry.names() == ("first", "broken", "last")
    assert any("broken" in record.getMessage() for record in caplog.records)
