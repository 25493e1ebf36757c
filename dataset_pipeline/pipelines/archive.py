"""Dated archive storage: directory provisioning, file relocation and tree replication.

None of the helpers here raise on filesystem failures. They log the failure and
report it back so a single bad entry never aborts a run; downstream I/O surfaces
anything that is really missing.
"""

import asyncio
import logging
import os
import re
import shutil
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_YEAR_RE = re.compile(r"^\d{4}$")
_TWO_DIGIT_RE = re.compile(r"^\d{2}$")


class ArchiveDestination(BaseModel):
    """Directories a run's artifacts are archived into."""

    dated_dir: Path
    raw: Path
    normalized: Path
    download: Path

    @classmethod
    def for_day(cls, options, day: Optional[date] = None) -> "ArchiveDestination":
        """Build ``<archived_dir>/<YYYY>/<MM>/<DD>/{raw,normalized,download}``.

        Each subtree can be replaced wholesale by its ``archived_*_dir`` override.
        """
        day = day or date.today()
        archived_dir = Path(options.archived_dir or "archived")
        dated_dir = archived_dir / f"{day:%Y}" / f"{day:%m}" / f"{day:%d}"

        return cls(
            dated_dir=dated_dir,
            raw=Path(options.archived_raw_data_dir or dated_dir / "raw"),
            normalized=Path(options.archived_normalized_data_dir or dated_dir / "normalized"),
            download=Path(options.archived_download_dir or dated_dir / "download"),
        )


class RelocationReport(BaseModel):
    """Outcome of moving the entries of one directory into another."""

    source: str
    destination: str
    moved: List[str] = Field(default_factory=list)
    overwritten: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and not self.failed


def ensure_dir(path: PathLike) -> bool:
    """Create ``path`` and any missing parents.

    Returns True when the directory exists afterwards. Failures are logged,
    not raised.
    """
    logger.info(f"Making directory {path}")
    try:
        Path(path).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Failed to make directory {path}: {e}")
        return False
    return True


def _move_entry(src: Path, dest: Path) -> bool:
    """Move one file or directory, replacing whatever is at ``dest``.

    The existing entry is only removed once the new one sits beside it, so a
    failed move leaves the previous archive in place. Returns True when an
    existing entry was replaced.
    """
    if not (dest.is_symlink() or dest.exists()):
        # Renames within a volume, copies and deletes across volumes
        shutil.move(str(src), str(dest))
        return False

    incoming = dest.with_name(f".{dest.name}.incoming")
    _remove_entry(incoming)
    shutil.move(str(src), str(incoming))

    if not _is_real_dir(incoming) and not _is_real_dir(dest):
        os.replace(incoming, dest)
        return True

    previous = dest.with_name(f".{dest.name}.previous")
    _remove_entry(previous)
    os.replace(dest, previous)
    try:
        os.replace(incoming, dest)
    except OSError:
        os.replace(previous, dest)
        raise
    _remove_entry(previous)
    return True


def _is_real_dir(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink()


def _remove_entry(path: Path) -> None:
    if _is_real_dir(path):
        shutil.rmtree(path)
    elif path.is_symlink() or path.exists():
        path.unlink()


async def relocate(src_dir: PathLike, dest_dir: PathLike) -> RelocationReport:
    """Move every immediate entry of ``src_dir`` into ``dest_dir``.

    Moves run concurrently and independently: one failing entry does not stop
    the others. Same-named entries already in ``dest_dir`` are replaced.
    """
    src = Path(src_dir)
    dest = Path(dest_dir)
    logger.info(f"Moving files from {src} to {dest}")

    report = RelocationReport(source=str(src), destination=str(dest))

    try:
        names = await asyncio.to_thread(lambda: sorted(p.name for p in src.iterdir()))
    except OSError as e:
        logger.error(f"Error moving files from {src} to {dest}: {e}")
        report.error = str(e)
        return report

    results = await asyncio.gather(
        *(asyncio.to_thread(_move_entry, src / name, dest / name) for name in names),
        return_exceptions=True,
    )

    for name, result in zip(names, results):
        if isinstance(result, Exception):
            logger.error(f"Error moving {src / name} to {dest / name}: {result}")
            report.failed[name] = str(result)
            continue

        report.moved.append(name)
        if result:
            logger.warning(f"Replaced existing archived entry {dest / name}")
            report.overwritten.append(name)

    logger.debug(
        f"Moved {len(report.moved)} entries from {src} to {dest} "
        f"({len(report.failed)} failed, {len(report.overwritten)} replaced)"
    )
    return report


async def replicate_tree(src_dir: PathLike, dest_dir: PathLike) -> bool:
    """Recursively copy ``src_dir`` into ``dest_dir``, leaving the source in place."""
    logger.info(f"Recursively copying files from {src_dir} to {dest_dir}")
    try:
        await asyncio.to_thread(shutil.copytree, src_dir, dest_dir, dirs_exist_ok=True)
    except OSError as e:
        logger.error(f"Error recursively copying files from {src_dir} to {dest_dir}: {e}")
        return False
    return True


def list_archived_days(archived_dir: PathLike) -> List[str]:
    """List the days (``YYYY-MM-DD``) that have a dated archive directory."""
    root = Path(archived_dir)
    if not root.exists():
        return []

    days = []
    for year in root.iterdir():
        if not (year.is_dir() and _YEAR_RE.match(year.name)):
            continue
        for month in year.iterdir():
            if not (month.is_dir() and _TWO_DIGIT_RE.match(month.name)):
                continue
            for day in month.iterdir():
                if day.is_dir() and _TWO_DIGIT_RE.match(day.name):
                    days.append(f"{year.name}-{month.name}-{day.name}")

    return sorted(days)
