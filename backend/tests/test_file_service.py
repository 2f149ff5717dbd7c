"""Tests for output layout and source cleanup."""

from datetime import datetime
from pathlib import Path

import pytest

from transcoder.services.file_service import FileService

NOW = datetime(2024, 3, 7, 9, 30)


@pytest.fixture
def temp_dir(tmp_path) -> Path:
    path = tmp_path / "temp"
    path.mkdir()
    return path


class TestOutputLayout:

    @pytest.mark.parametrize(
        "mode, expected",
        [
            ("flat", "out"),
            ("date", "out/2024/03/07"),
            ("datetime", "out/2024/03/07/09"),
        ],
    )
    def test_modes(self, temp_dir: Path, mode: str, expected: str) -> None:
        service = FileService(str(temp_dir), mode)

        assert service.resolve_output_dir("out", NOW) == Path(expected)

    def test_unknown_mode_is_flat(self, temp_dir: Path) -> None:
        service = FileService(str(temp_dir), "weekly")

        assert service.output_dir_mode == "flat"

    def test_prepare_creates_directory(self, temp_dir: Path, tmp_path: Path) -> None:
        service = FileService(str(temp_dir), "date")

        output_dir = service.prepare_output_dir(str(tmp_path / "out"))

        assert output_dir.is_dir()
        assert output_dir.parent.parent.parent == tmp_path / "out"

    def test_base_names_are_unique(self) -> None:
        names = {FileService.new_base_name() for _ in range(50)}

        assert len(names) == 50
        assert all(name.startswith("video_") for name in names)


class TestSourceCleanup:

    def test_temp_upload_deleted_even_when_retained(self, temp_dir: Path) -> None:
        service = FileService(str(temp_dir))
        upload = temp_dir / "upload.mp4"

        assert service.should_delete_source(str(upload), retain_original=True)

    def test_library_file_kept_when_retained(self, temp_dir: Path, tmp_path: Path) -> None:
        service = FileService(str(temp_dir))

        assert not service.should_delete_source(str(tmp_path / "library.mp4"), retain_original=True)
        assert service.should_delete_source(str(tmp_path / "library.mp4"), retain_original=False)

    async def test_cleanup_removes_temp_upload(self, temp_dir: Path) -> None:
        service = FileService(str(temp_dir))
        upload = temp_dir / "upload.mp4"
        upload.write_bytes(b"data")

        assert await service.cleanup_source(str(upload), retain_original=True)
        assert not upload.exists()

    async def test_cleanup_keeps_retained_source(self, temp_dir: Path, tmp_path: Path) -> None:
        service = FileService(str(temp_dir))
        source = tmp_path / "library.mp4"
        source.write_bytes(b"data")

        assert not await service.cleanup_source(str(source), retain_original=True)
        assert source.exists()

    async def test_missing_file_reports_not_deleted(self, temp_dir: Path) -> None:
        service = FileService(str(temp_dir))

        assert not await service.delete_source(str(temp_dir / "gone.mp4"))

    async def test_remove_partial_outputs(self, temp_dir: Path, tmp_path: Path) -> None:
        service = FileService(str(temp_dir))
        for name in ("video_1_init-0.m4s", "video_1_chunk-0-00001.m4s", "video_1.mpd", "other.mpd"):
            (tmp_path / name).write_bytes(b"x")

        removed = await service.remove_partial_outputs(tmp_path, "video_1")

        assert removed == 3
        assert (tmp_path / "other.mpd").exists()
