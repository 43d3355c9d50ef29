"""Tests for the large-file spotlight scan."""

import os
import threading
from unittest.mock import patch

from burrow.config import Settings
from burrow.rules import ScanRules
from burrow.spotlight import SpotlightScanner

KIB = 1024


def write(path, size):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(os.urandom(size))
    return path


def make_scanner(use_index=False, **overrides) -> SpotlightScanner:
    settings = Settings(
        large_file_min_size=overrides.pop("min_size", 64 * KIB),
        large_file_prefilter=overrides.pop("prefilter", 16 * KIB),
        **overrides,
    )
    return SpotlightScanner(ScanRules(), settings, use_index=use_index)


class TestSpotlightScan:
    def test_finds_files_over_threshold(self, tmp_path):
        write(tmp_path / "big.iso", 200 * KIB)
        write(tmp_path / "nested" / "deeper" / "bigger.dmg", 300 * KIB)
        write(tmp_path / "small.bin", 20 * KIB)

        files = make_scanner().scan(str(tmp_path))
        assert [f.name for f in files] == ["bigger.dmg", "big.iso"]
        assert files[0].size >= files[1].size

    def test_skips_fold_directories(self, tmp_path):
        write(tmp_path / "node_modules" / "pkg" / "blob.bin", 200 * KIB)
        write(tmp_path / "media" / "clip.mov", 200 * KIB)
        files = make_scanner().scan(str(tmp_path))
        assert [f.name for f in files] == ["clip.mov"]

    def test_skips_source_and_text_files(self, tmp_path):
        write(tmp_path / "dump.json", 200 * KIB)
        write(tmp_path / "server.log.txt", 200 * KIB)
        write(tmp_path / "disk.img", 200 * KIB)
        files = make_scanner().scan(str(tmp_path))
        assert [f.name for f in files] == ["disk.img"]

    def test_symlinks_ignored(self, tmp_path):
        target = write(tmp_path / "real.bin", 200 * KIB)
        os.symlink(target, tmp_path / "alias.bin")
        files = make_scanner().scan(str(tmp_path))
        assert [f.name for f in files] == ["real.bin"]

    def test_limit(self, tmp_path):
        for i in range(5):
            write(tmp_path / f"file{i}.bin", (100 + i * 10) * KIB)
        files = make_scanner(max_large_files=3).scan(str(tmp_path))
        assert len(files) == 3
        assert files[0].name == "file4.bin"

    def test_cancelled_scan_returns(self, tmp_path):
        write(tmp_path / "big.iso", 200 * KIB)
        cancel = threading.Event()
        cancel.set()
        assert make_scanner().scan(str(tmp_path), cancel) == []


class TestIndexResults:
    def test_index_hits_merged(self, tmp_path):
        walked = write(tmp_path / "walked.bin", 200 * KIB)
        indexed = write(tmp_path / "indexed.bin", 300 * KIB)
        with patch("burrow.spotlight.spotlight_query", return_value=[str(indexed), str(walked)]):
            files = make_scanner(use_index=True).scan(str(tmp_path))
        assert [f.name for f in files] == ["indexed.bin", "walked.bin"]

    def test_index_hits_filtered(self, tmp_path):
        folded = write(tmp_path / "node_modules" / "blob.bin", 300 * KIB)
        text = write(tmp_path / "notes.md", 300 * KIB)
        missing = str(tmp_path / "gone.bin")
        with patch(
            "burrow.spotlight.spotlight_query",
            return_value=[str(folded), str(text), missing],
        ):
            files = make_scanner(use_index=True).scan(str(tmp_path))
        assert files == []

    def test_index_unavailable(self, tmp_path):
        write(tmp_path / "big.iso", 200 * KIB)
        with patch("burrow.spotlight.spotlight_query", return_value=None):
            files = make_scanner(use_index=True).scan(str(tmp_path))
        assert [f.name for f in files] == ["big.iso"]
