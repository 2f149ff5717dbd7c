"""File system operations: output layout and source cleanup."""

import asyncio
import logging
import secrets
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

from transcoder.exceptions import CleanupError

logger = logging.getLogger(__name__)

OUTPUT_DIR_MODES = ("flat", "date", "datetime")


class FileService:
    """Service for output directories and source file cleanup."""

    def __init__(self, temp_dir: str, output_dir_mode: str = "datetime"):
        self.temp_dir = Path(temp_dir)
        if output_dir_mode not in OUTPUT_DIR_MODES:
            logger.warning(f"Unknown output dir mode {output_dir_mode!r}, using flat")
            output_dir_mode = "flat"
        self.output_dir_mode = output_dir_mode

    def resolve_output_dir(self, base_dir: str, now: Optional[datetime] = None) -> Path:
        """
        Compute the package directory below base_dir.

        Args:
            base_dir: Output directory requested by the caller
            now: Timestamp used for date based layouts

        Returns:
            base_dir, base_dir/YYYY/MM/DD or base_dir/YYYY/MM/DD/HH
        """
        now = now or datetime.now()
        base = Path(base_dir)
        if self.output_dir_mode == "datetime":
            return base / f"{now:%Y}" / f"{now:%m}" / f"{now:%d}" / f"{now:%H}"
        if self.output_dir_mode == "date":
            return base / f"{now:%Y}" / f"{now:%m}" / f"{now:%d}"
        return base

    def prepare_output_dir(self, base_dir: str) -> Path:
        """Create the package directory for a new job."""
        output_dir = self.resolve_output_dir(base_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        return output_dir

    @staticmethod
    def new_base_name() -> str:
        """Unique name shared by every file of one package."""
        return f"video_{int(time.time() * 1000)}_{secrets.token_hex(8)}"

    def is_temp_path(self, path: str) -> bool:
        """
        Check if path is inside the temporary intake directory.

        Args:
            path: Path to check

        Returns:
            True if the file lives under the temp directory
        """
        try:
            return Path(path).resolve().is_relative_to(self.temp_dir.resolve())
        except (ValueError, RuntimeError, OSError):
            return False

    def should_delete_source(self, path: str, retain_original: bool) -> bool:
        """Temp uploads are always removed; other sources only when not retained."""
        return self.is_temp_path(path) or not retain_original

    async def delete_source(self, path: str) -> bool:
        """
        Delete a processed source file without blocking the event loop.

        Failures are logged and reported as False.

        Args:
            path: Absolute path to the source

        Returns:
            True if the file was deleted
        """
        try:
            await asyncio.to_thread(self._unlink, path)
            logger.info(f"Deleted source file: {path}")
            return True
        except CleanupError as e:
            logger.warning(str(e))
            return False

    @staticmethod
    def _unlink(path: str):
        try:
            Path(path).unlink()
        except FileNotFoundError:
            raise CleanupError(f"Source file already gone: {path}")
        except OSError as e:
            raise CleanupError(f"Failed to delete source file {path}: {e}") from e

    async def cleanup_source(self, path: str, retain_original: bool) -> bool:
        """Apply the retention policy to a processed source; returns True if deleted."""
        if not self.should_delete_source(path, retain_original):
            return False
        return await self.delete_source(path)

    async def remove_partial_outputs(self, output_dir: Path, base_name: str) -> int:
        """Remove files left by an interrupted encode; returns how many were removed."""

        def _remove() -> int:
            removed = 0
            for item in output_dir.glob(f"{base_name}*"):
                if not item.is_file():
                    continue
                try:
                    item.unlink()
                    removed += 1
                except OSError as e:
                    logger.warning(f"Failed to remove partial output {item}: {e}")
            return removed

        removed = await asyncio.to_thread(_remove)
        if removed:
            logger.info(f"Removed {removed} partial files for {base_name}")
        return removed
