"""
Tests for the locked persistence facade.

Covers:
- save/load round trips through both codecs
- missing files, None values and directory creation
- load_or_create creation, reuse, concurrent creators and the fatal race
- lock usage per operation
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path

import pandas as pd
import pytest

from serialkit.io import binary_codec, persistence
from serialkit.io.locking import FileLockProvider, KeyedMemoryLockProvider
from serialkit.io.persistence import FilePersistence
from serialkit.utils.exceptions import FileRetrievalError, MarkupEncodeError


@dataclass
class AppConfig:
    name: str = "default"
    retries: int = 3
    hosts: list[str] = field(default_factory=lambda: ["a", "b"])


class RecordingLocks(KeyedMemoryLockProvider):
    """In-memory provider that records which locks were taken."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[str] = []

    @contextmanager
    def write_lock(self, path):
        self.events.append("write")
        with super().write_lock(path):
            yield

    @contextmanager
    def read_lock(self, path):
        self.events.append("read")
        with super().read_lock(path):
            yield


class NeverCreatingLocks(KeyedMemoryLockProvider):
    """Provider whose create step claims someone else created the file."""

    def create_if_absent(self, path, action) -> bool:
        return False


@pytest.fixture
def store() -> FilePersistence:
    return FilePersistence(locks=KeyedMemoryLockProvider())


# ----------------------
# save / load
# ----------------------

def test_save_then_load_binary_int(tmp_path: Path, store: FilePersistence):
    target = tmp_path / "data.bin"
    store.save(target, 42)

    value, modified = store.load_with_timestamp(target, int)

    assert value == 42
    assert modified == datetime.fromtimestamp(target.stat().st_mtime)
    assert store.load(target, int) == 42


def test_save_then_load_markup_dataclass(tmp_path: Path, store: FilePersistence):
    target = tmp_path / "cfg.xml"
    cfg = AppConfig(name="prod", retries=5, hosts=["x"])
    store.save(target, cfg, AppConfig)
    assert store.load(target, AppConfig) == cfg


def test_save_then_load_table(tmp_path: Path, store: FilePersistence):
    target = tmp_path / "prices.xml"
    df = pd.DataFrame({"close": [1.5, 2.5], "qty": [1, 2]})
    store.save(target, df)

    out = store.load(target, pd.DataFrame)

    assert out["close"].tolist() == [1.5, 2.5]
    assert out["qty"].dtype == "int64"


def test_save_creates_parent_directories(tmp_path: Path, store: FilePersistence):
    target = tmp_path / "a" / "b" / "c.bin"
    store.save(target, "x")
    assert store.load(target) == "x"


def test_save_none_does_not_create_file(tmp_path: Path, store: FilePersistence):
    target = tmp_path / "none.xml"
    store.save(target, None)
    assert not target.exists()


def test_missing_file_loads_zero_value_without_writing(tmp_path: Path, store: FilePersistence):
    assert store.load_with_timestamp(tmp_path / "missing.bin", int) == (0, None)
    assert store.load(tmp_path / "missing.xml") is None
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize("bad", [None, "", " \t"])
def test_blank_paths_rejected_everywhere(bad, store: FilePersistence):
    expected = TypeError if bad is None else ValueError
    with pytest.raises(expected):
        store.save(bad, 1)
    with pytest.raises(expected):
        store.load(bad)
    with pytest.raises(expected):
        store.load_or_create(bad, lambda: 1)


def test_exists_and_last_modified(tmp_path: Path, store: FilePersistence):
    target = tmp_path / "data.bin"
    assert store.exists(target) is False
    assert store.last_modified(target) is None
    store.save(target, [1])
    assert store.exists(target) is True
    assert isinstance(store.last_modified(target), datetime)


# ----------------------
# locks
# ----------------------

def test_lock_usage_per_operation(tmp_path: Path):
    locks = RecordingLocks()
    store = FilePersistence(locks=locks)
    target = tmp_path / "data.bin"

    store.load(target)
    assert locks.events == []

    store.save(target, 1)
    store.load(target)
    assert locks.events == ["write", "read"]


def test_reader_with_separate_provider_sees_whole_previous_value(tmp_path: Path, monkeypatch):
    # two providers share no in-memory state, as in two processes
    writer = FilePersistence(locks=FileLockProvider(timeout=5))
    reader = FilePersistence(locks=FileLockProvider(timeout=5))
    target = tmp_path / "data.bin"
    writer.save(target, {"v": 1})

    encoded = threading.Event()
    release = threading.Event()
    real_encode = binary_codec.encode

    def stalled_encode(stream, value, protocol=None):
        real_encode(stream, value, protocol=protocol)
        stream.flush()
        encoded.set()
        release.wait(timeout=5)

    monkeypatch.setattr(binary_codec, "encode", stalled_encode)
    t = threading.Thread(target=writer.save, args=(target, {"v": 2}))
    t.start()
    try:
        assert encoded.wait(timeout=5)
        value, modified = reader.load_with_timestamp(target, dict)
        assert value == {"v": 1}
        assert modified is not None
    finally:
        release.set()
        t.join(timeout=5)

    assert reader.load(target) == {"v": 2}


def test_failed_save_keeps_previous_value_for_load_or_create(tmp_path: Path, store: FilePersistence):
    target = tmp_path / "cfg.xml"
    store.save(target, AppConfig(name="kept"), AppConfig)

    with pytest.raises(MarkupEncodeError):
        store.save(target, object())

    value, modified = store.load_or_create(target, AppConfig, AppConfig)
    assert value == AppConfig(name="kept")
    assert modified is not None


def test_default_provider_round_trip(tmp_path: Path):
    store = FilePersistence()
    target = tmp_path / "data.bin"
    store.save(target, 1)
    assert store.load(target) == 1


# ----------------------
# load_or_create
# ----------------------

def test_load_or_create_creates_missing_file(tmp_path: Path, store: FilePersistence):
    target = tmp_path / "cfg.xml"
    default = AppConfig()
    before = datetime.now()

    value, modified = store.load_or_create(target, lambda: default, AppConfig)

    assert value == default
    assert before - timedelta(seconds=1) <= modified <= datetime.now() + timedelta(seconds=1)
    assert target.read_bytes().startswith(b"<?xml")
    assert store.load(target, AppConfig) == default


def test_load_or_create_reuses_existing_file(tmp_path: Path, store: FilePersistence):
    target = tmp_path / "cfg.xml"
    store.save(target, AppConfig(name="saved"), AppConfig)
    calls = []

    value, modified = store.load_or_create(target, lambda: calls.append(1) or AppConfig(), AppConfig)

    assert value.name == "saved"
    assert calls == []
    assert modified == datetime.fromtimestamp(target.stat().st_mtime)


def test_module_load_or_create_twice_rebuilds_dataclass(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(persistence, "_default", None)
    target = tmp_path / "settings.xml"

    created, _ = persistence.load_or_create(target, AppConfig, AppConfig)
    reread, modified = persistence.load_or_create(target, AppConfig, AppConfig)

    assert created == reread == AppConfig()
    assert modified == persistence.last_modified(target)


def test_concurrent_load_or_create_writes_once(tmp_path: Path, store: FilePersistence):
    target = tmp_path / "shared.xml"
    calls = []
    calls_lock = threading.Lock()
    barrier = threading.Barrier(2)

    def factory() -> AppConfig:
        with calls_lock:
            calls.append(1)
        time.sleep(0.05)
        return AppConfig(name="shared")

    def worker():
        barrier.wait()
        return store.load_or_create(target, factory, AppConfig)

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(worker) for _ in range(2)]
        results = [f.result() for f in futures]

    assert len(calls) == 1
    assert results[0][0] == results[1][0] == AppConfig(name="shared")
    assert all(modified is not None for _, modified in results)


def test_failed_factory_leaves_no_file(tmp_path: Path, store: FilePersistence):
    target = tmp_path / "cfg.bin"

    def factory():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.load_or_create(target, factory)
    assert not target.exists()


def test_unretrievable_file_raises(tmp_path: Path):
    store = FilePersistence(locks=NeverCreatingLocks())
    with pytest.raises(FileRetrievalError, match="Unable to retrieve file"):
        store.load_or_create(tmp_path / "ghost.xml", AppConfig, AppConfig)


# ----------------------
# module-level functions
# ----------------------

def test_module_functions_use_default_instance(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(persistence, "_default", None)
    target = tmp_path / "data.bin"

    persistence.save(target, {"k": 1})

    assert persistence.load(target) == {"k": 1}
    assert persistence.exists(target)
    value, modified = persistence.load_or_create(target, dict)
    assert value == {"k": 1}
    assert modified == persistence.last_modified(target)
