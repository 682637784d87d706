"""Tests for the object-vault CLI."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import ImageFactory
from typer.testing import CliRunner

from object_vault import cli
from object_vault.storage.engine import StorageEngine
from object_vault.storage.hashing import hash_bytes

runner = CliRunner()


@pytest.fixture(autouse=True)
def configured(store_root: Path, metadata_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli.settings, "store_root", str(store_root))
    monkeypatch.setattr(cli.settings, "metadata_file_path", str(metadata_path))


@pytest.fixture
def images(tmp_path: Path, make_image: ImageFactory) -> Path:
    folder = tmp_path / "incoming"
    folder.mkdir()
    (folder / "red.png").write_bytes(make_image("PNG", color=(255, 0, 0)))
    (folder / "blue.png").write_bytes(make_image("PNG", color=(0, 0, 255)))
    (folder / "copy.png").write_bytes(make_image("PNG", color=(255, 0, 0)))
    (folder / "notes.txt").write_text("skipped by extension")
    return folder


class TestStore:
    def test_store_directory(self, images: Path) -> None:
        result = runner.invoke(cli.app, ["store", str(images)])

        assert result.exit_code == 0, result.output
        assert "2 stored, 1 duplicates, 0 rejected, 0 failed" in result.output

    def test_store_rejected_file_still_succeeds(self, tmp_path: Path) -> None:
        bogus = tmp_path / "fake.png"
        bogus.write_bytes(b"not an image at all")

        result = runner.invoke(cli.app, ["store", str(bogus)])
        assert result.exit_code == 0
        assert "1 rejected" in result.output

    def test_missing_path(self, tmp_path: Path) -> None:
        result = runner.invoke(cli.app, ["store", str(tmp_path / "nope")])
        assert result.exit_code == 1
        assert "does not exist" in result.output


class TestInspect:
    def test_stats_list_show(self, images: Path, make_image: ImageFactory) -> None:
        runner.invoke(cli.app, ["store", str(images)])
        digest = hash_bytes(make_image("PNG", color=(255, 0, 0)))

        result = runner.invoke(cli.app, ["stats"])
        assert result.exit_code == 0
        assert "Unique objects: 2" in result.output
        assert "Total uploads: 3" in result.output

        result = runner.invoke(cli.app, ["list"])
        assert result.exit_code == 0
        assert "Showing 2 of 2 objects" in result.output

        result = runner.invoke(cli.app, ["show", digest[:10]])
        assert result.exit_code == 0
        assert digest in result.output

    def test_show_unknown(self) -> None:
        result = runner.invoke(cli.app, ["show", "deadbeef"])
        assert result.exit_code == 1
        assert "No object found" in result.output


class TestDelete:
    def test_delete(self, images: Path, make_image: ImageFactory) -> None:
        runner.invoke(cli.app, ["store", str(images / "blue.png")])
        digest = hash_bytes(make_image("PNG", color=(0, 0, 255)))

        result = runner.invoke(cli.app, ["delete", digest])
        assert result.exit_code == 0
        assert "Deleted" in result.output

        result = runner.invoke(cli.app, ["delete", digest])
        assert "No object with digest" in result.output


class TestMaintenance:
    def test_sweep_removes_expired(self, engine: StorageEngine, make_image: ImageFactory) -> None:
        # The fixture engine shares the CLI's store paths but writes at a fixed past time
        engine.store(make_image("PNG"), "old.png")
        engine.close()

        result = runner.invoke(cli.app, ["sweep"])
        assert result.exit_code == 0, result.output
        assert "1 deleted" in result.output
        assert "0 remaining" in result.output

    def test_verify_reports_and_repairs(
        self, engine: StorageEngine, make_image: ImageFactory
    ) -> None:
        data = make_image("PNG")
        engine.store(data, "a.png")
        record = engine.get(hash_bytes(data))
        assert record is not None
        engine.close()
        (engine.blob_store.root / record.stored_relative_path).unlink()

        result = runner.invoke(cli.app, ["verify"])
        assert result.exit_code == 1
        assert "orphan record" in result.output

        result = runner.invoke(cli.app, ["verify", "--repair"])
        assert result.exit_code == 0
        assert "1 records removed" in result.output

        result = runner.invoke(cli.app, ["verify"])
        assert result.exit_code == 0
        assert "consistent" in result.output
