"""Delete build output files once they have been uploaded."""
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Pattern, Tuple

logger = logging.getLogger(__name__)


def delete_matching(
    output_dir: Path,
    asset_names: Iterable[str],
    pattern: Optional[Pattern[str]],
) -> Tuple[List[Path], List[Tuple[Path, OSError]]]:
    """
    Delete every asset whose name matches ``pattern`` from ``output_dir``.

    Best effort: files that are already gone are skipped silently, and any
    other OSError is logged and collected instead of raised.

    Returns:
        (deleted paths, [(path, error)] for paths that could not be removed)
    """
    if pattern is None:
        return [], []

    output_dir = Path(output_dir)
    deleted: List[Path] = []
    failed: List[Tuple[Path, OSError]] = []
    for name in asset_names:
        if not pattern.search(name):
            continue
        path = output_dir / name
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"Nothing to delete at {path}")
            continue
        except OSError as exc:
            logger.warning(f"Could not delete {path}: {exc}")
            failed.append((path, exc))
            continue
        logger.debug(f"Deleted {path}")
        deleted.append(path)

    if deleted:
        logger.info(f"Deleted {len(deleted)} files from {output_dir}")
    return deleted, failed
