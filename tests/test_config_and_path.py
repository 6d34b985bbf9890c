"""Tests for configuration loading and path validation."""

from __future__ import annotations

import pickle
from pathlib import Path

import pytest

from serialkit.utils.config import SerializerConfig
from serialkit.utils.path import is_markup_path, validate_path


def test_config_defaults():
    cfg = SerializerConfig()
    assert cfg.markup_suffix == ".xml"
    assert cfg.pickle_protocol == pickle.HIGHEST_PROTOCOL
    assert cfg.default_mode == "wb"


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("SERIALKIT_MARKUP_SUFFIX", ".XmL")
    monkeypatch.setenv("SERIALKIT_PICKLE_PROTOCOL", "4")
    monkeypatch.setenv("SERIALKIT_LOCK_TIMEOUT", "2.5")
    cfg = SerializerConfig.from_env()
    assert cfg.markup_suffix == ".XmL"
    assert cfg.pickle_protocol == 4
    assert cfg.lock_timeout == 2.5


def test_config_from_env_rejects_bad_numbers(monkeypatch):
    monkeypatch.setenv("SERIALKIT_PICKLE_PROTOCOL", "four")
    with pytest.raises(ValueError, match="SERIALKIT_PICKLE_PROTOCOL"):
        SerializerConfig.from_env()


def test_validate_path_accepts_str_and_pathlike(tmp_path: Path):
    assert validate_path(str(tmp_path / "a.bin")) == tmp_path / "a.bin"
    assert validate_path(tmp_path / "a.bin") == tmp_path / "a.bin"


@pytest.mark.parametrize("bad, error", [(None, TypeError), (42, TypeError), ("", ValueError), ("  ", ValueError)])
def test_validate_path_rejects(bad, error):
    with pytest.raises(error):
        validate_path(bad)


@pytest.mark.parametrize(
    "path, expected",
    [("a.xml", True), ("A.XML", True), ("dir/a.Xml", True), ("a.xml.bak", False), ("a.bin", False)],
)
def test_is_markup_path(path, expected):
    assert is_markup_path(path) is expected
