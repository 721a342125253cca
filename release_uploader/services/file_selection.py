"""File discovery and selection for release uploads."""
import logging
from pathlib import Path
from typing import Dict, Mapping, Optional, Pattern

logger = logging.getLogger(__name__)


def is_included(name: str, include: Optional[Pattern[str]], exclude: Optional[Pattern[str]]) -> bool:
    """A name is selected when it matches include (if any) and not exclude (if any)."""
    included = include.search(name) is not None if include is not None else True
    excluded = exclude.search(name) is not None if exclude is not None else False
    return included and not excluded


class FileCollector:
    """Collects build output files and selects the ones to upload."""

    @staticmethod
    def collect_assets(output_dir: Path) -> Dict[str, Path]:
        """
        Map every file under ``output_dir`` to its path.

        Names are POSIX paths relative to ``output_dir`` so they match the
        asset names a bundler reports.

        Args:
            output_dir: Build output directory

        Returns:
            Asset name -> file path, sorted by name
        """
        output_dir = Path(output_dir)
        assets = {}
        for item in sorted(output_dir.rglob("*")):
            if item.is_file():
                assets[item.relative_to(output_dir).as_posix()] = item
        return assets

    @staticmethod
    def select(
        assets: Mapping[str, Path],
        include: Optional[Pattern[str]] = None,
        exclude: Optional[Pattern[str]] = None,
    ) -> Dict[str, Path]:
        """Filter an asset map by include/exclude patterns."""
        selected = {
            name: Path(path)
            for name, path in assets.items()
            if is_included(name, include, exclude)
        }
        skipped = len(assets) - len(selected)
        if skipped:
            logger.debug(f"Skipped {skipped} assets not matching include/exclude patterns")
        return selected

