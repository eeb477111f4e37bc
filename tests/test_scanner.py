"""Tests for project file scanning."""

import hashlib
import os
import warnings
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from ccheckpoints.scanner import (
    ContentScanner,
    IgnoreRules,
    compute_content_hash,
    load_gitignore_patterns,
    scan_project,
)


def _relative_paths(result) -> list[str]:
    return [f.relative_path for f in result.files]


class TestGitignorePatterns:
    def test_comments_blanks_and_negations_dropped(self, tmp_path: Path) -> None:
        gitignore = tmp_path / ".gitignore"
        gitignore.write_text("# build output\n\n*.tmp\n!keep.tmp\n  secrets/  \n")
        assert load_gitignore_patterns(gitignore) == ["*.tmp", "secrets/"]

    def test_nested_gitignore_is_scoped_to_its_directory(self, tmp_path: Path) -> None:
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / ".gitignore").write_text("generated.txt\n")
        rules = IgnoreRules(tmp_path)
        rules.add_gitignore(tmp_path / "pkg")

        assert rules.is_ignored("pkg/generated.txt")
        assert not rules.is_ignored("generated.txt")

    def test_default_patterns(self, tmp_path: Path) -> None:
        rules = IgnoreRules(tmp_path)
        assert rules.is_ignored("node_modules", is_dir=True)
        assert rules.is_ignored("server.log")
        assert rules.is_ignored("pkg/__pycache__", is_dir=True)
        assert not rules.is_ignored("src/main.py")

    def test_rules_build_without_deprecation_warnings(self, tmp_path: Path) -> None:
        (tmp_path / ".gitignore").write_text("*.tmp\nbuild/\n")
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            rules = IgnoreRules(tmp_path, extra_patterns=["*.bak"])
            rules.add_gitignore(tmp_path)

        assert rules.is_ignored("notes.tmp")
        assert rules.is_ignored("old.bak")
        assert rules.is_ignored("build", is_dir=True)


class TestContentScanner:
    """Tests for ContentScanner.scan."""

    def test_captures_text_files(self, project_dir: Path) -> None:
        result = ContentScanner().scan(project_dir)

        assert _relative_paths(result) == ["README.md", "src/app.py"]
        readme = result.files[0]
        assert readme.absolute_path == str(project_dir / "README.md")
        assert readme.content == "# My project\n"
        assert readme.size == len(b"# My project\n")
        assert readme.extension == ".md"
        assert readme.content_hash == hashlib.sha256(b"# My project\n").hexdigest()
        assert result.total_size == readme.size + result.files[1].size
        assert not result.truncated

    def test_respects_gitignore(self, project_dir: Path) -> None:
        (project_dir / ".gitignore").write_text("*.secret\nout/\n")
        (project_dir / "api.secret").write_text("token")
        (project_dir / "out").mkdir()
        (project_dir / "out" / "bundle.js").write_text("bundle")

        paths = _relative_paths(ContentScanner().scan(project_dir))

        assert "api.secret" not in paths
        assert "out/bundle.js" not in paths
        assert "README.md" in paths

    def test_negation_is_not_honored(self, project_dir: Path) -> None:
        (project_dir / ".gitignore").write_text("*.txt\n!keep.txt\n")
        (project_dir / "keep.txt").write_text("keep me")

        assert "keep.txt" not in _relative_paths(ContentScanner().scan(project_dir))

    def test_default_ignores(self, project_dir: Path) -> None:
        for directory in ("node_modules/lib", ".git", "dist", "tmp"):
            (project_dir / directory).mkdir(parents=True)
        (project_dir / "node_modules" / "lib" / "index.js").write_text("module")
        (project_dir / ".git" / "HEAD").write_text("ref")
        (project_dir / "dist" / "app.js").write_text("built")
        (project_dir / "tmp" / "scratch.txt").write_text("scratch")
        (project_dir / "debug.log").write_text("log")

        assert _relative_paths(ContentScanner().scan(project_dir)) == ["README.md", "src/app.py"]

    def test_hidden_files_are_skipped(self, project_dir: Path) -> None:
        (project_dir / ".env").write_text("SECRET=1")
        (project_dir / ".config").mkdir()
        (project_dir / ".config" / "settings.json").write_text("{}")

        paths = _relative_paths(ContentScanner().scan(project_dir))

        assert ".env" not in paths
        assert ".config/settings.json" not in paths

    def test_extra_ignore_patterns(self, project_dir: Path) -> None:
        scanner = ContentScanner(extra_ignore_patterns=["*.md"])
        assert _relative_paths(scanner.scan(project_dir)) == ["src/app.py"]

    def test_large_file_skipped(self, project_dir: Path) -> None:
        (project_dir / "big.txt").write_text("x" * 200)
        result = ContentScanner(max_file_size=100).scan(project_dir)

        assert "big.txt" not in _relative_paths(result)
        assert any(s.path.endswith("big.txt") and s.reason == "too large" for s in result.skipped)

    def test_file_at_size_cap_is_kept(self, project_dir: Path) -> None:
        (project_dir / "exact.txt").write_text("x" * 100)
        result = ContentScanner(max_file_size=100).scan(project_dir)
        assert "exact.txt" in _relative_paths(result)

    def test_binary_file_skipped(self, project_dir: Path) -> None:
        (project_dir / "image.bin").write_bytes(b"\x89PNG\r\n\x1a\n\xff\xfe\x00")
        result = ContentScanner().scan(project_dir)

        assert "image.bin" not in _relative_paths(result)
        assert any(s.reason == "binary" for s in result.skipped)

    def test_max_files_truncates(self, tmp_path: Path) -> None:
        for i in range(5):
            (tmp_path / f"file{i}.txt").write_text(str(i))

        result = ContentScanner(max_files=3).scan(tmp_path)

        assert result.truncated
        assert _relative_paths(result) == ["file0.txt", "file1.txt", "file2.txt"]

    def test_batches_preserve_traversal_order(self, tmp_path: Path) -> None:
        for i in range(12):
            (tmp_path / f"f{i:02d}.txt").write_text(str(i))

        result = ContentScanner(batch_size=5, workers=3).scan(tmp_path)

        assert _relative_paths(result) == [f"f{i:02d}.txt" for i in range(12)]

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
    def test_symlinks_not_followed(self, project_dir: Path, tmp_path: Path) -> None:
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "external.txt").write_text("outside")
        (project_dir / "linked").symlink_to(outside, target_is_directory=True)
        (project_dir / "link.md").symlink_to(project_dir / "README.md")

        paths = _relative_paths(ContentScanner().scan(project_dir))

        assert "linked/external.txt" not in paths
        assert "link.md" not in paths

    def test_missing_directory_returns_empty_result(self, tmp_path: Path) -> None:
        result = ContentScanner().scan(tmp_path / "does-not-exist")
        assert result.files == []
        assert result.total_size == 0

    def test_unrepresentable_mtime_skips_only_that_file(self, project_dir: Path) -> None:
        os.utime(project_dir / "README.md", (123456, 123456))

        class _FailingDatetime(datetime):
            @classmethod
            def fromtimestamp(cls, ts, tz=None):
                if ts == 123456:
                    raise OverflowError("timestamp out of range for platform time_t")
                return datetime.fromtimestamp(ts, tz)

        with patch("ccheckpoints.scanner.datetime", _FailingDatetime):
            result = ContentScanner().scan(project_dir)

        assert _relative_paths(result) == ["src/app.py"]
        assert any(s.path.endswith("README.md") for s in result.skipped)

    def test_crlf_content_is_preserved(self, tmp_path: Path) -> None:
        (tmp_path / "win.txt").write_bytes(b"one\r\ntwo\r\n")
        result = ContentScanner().scan(tmp_path)
        assert result.files[0].content == "one\r\ntwo\r\n"


def test_compute_content_hash() -> None:
    assert compute_content_hash(b"abc") == hashlib.sha256(b"abc").hexdigest()


def test_scan_project_passes_options(project_dir: Path) -> None:
    result = scan_project(project_dir, extra_ignore_patterns=["src/"])
    assert _relative_paths(result) == ["README.md"]
