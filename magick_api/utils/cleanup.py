"""
Cleanup functions for uploaded and processed files
"""
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Union

from ..core.logger import logger

MAX_AGE_SECONDS = 24 * 60 * 60  # files expire after 24 hours


@dataclass
class SweepResult:
    scanned: int = 0
    deleted: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def merge(self, other: "SweepResult") -> "SweepResult":
        return SweepResult(
            scanned=self.scanned + other.scanned,
            deleted=self.deleted + other.deleted,
            errors=self.errors + other.errors,
        )


def sweep(directory: Union[str, Path], max_age_seconds: float = MAX_AGE_SECONDS,
          now: Optional[float] = None) -> SweepResult:
    """
    Delete regular files in directory whose mtime is older than max_age_seconds.

    Best effort: a file that cannot be inspected or removed is logged and
    skipped. Nothing is locked, so a file being written during the sweep
    can race with its deletion.
    """
    result = SweepResult()
    directory = Path(directory)
    current_time = time.time() if now is None else now
    cutoff = current_time - max_age_seconds

    try:
        entries = list(os.scandir(directory))
    except FileNotFoundError:
        return result
    except OSError as e:
        logger.error(f"❌ Cleanup failed for {directory}: {e}")
        result.errors.append(str(directory))
        return result

    for entry in entries:
        try:
            if not entry.is_file(follow_symlinks=False):
                continue
            result.scanned += 1

            mtime = entry.stat(follow_symlinks=False).st_mtime
            if mtime >= cutoff:
                continue

            os.remove(entry.path)
            result.deleted.append(entry.name)
            logger.info(f"🗑️ Deleted expired file: {entry.name} (age: {int((current_time - mtime) // 60)} minutes)")
        except FileNotFoundError:
            logger.debug(f"File already gone: {entry.name}")
        except OSError as e:
            logger.warning(f"⚠️ Failed to delete {entry.path}: {e}")
            result.errors.append(entry.name)

    return result


def sweep_directories(directories: Iterable[Union[str, Path]], max_age_seconds: float = MAX_AGE_SECONDS,
                      now: Optional[float] = None) -> SweepResult:
    """Sweep several directories with the same cutoff"""
    total = SweepResult()
    for directory in directories:
        total = total.merge(sweep(directory, max_age_seconds, now=now))

    if total.deleted:
        logger.info(f"✅ Cleanup complete: {len(total.deleted)} expired files deleted")
    return total
