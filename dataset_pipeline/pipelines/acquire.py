"""Acquire stage: download the scraped dataset into the raw data directory."""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Union

import aiohttp

from ..core.errors import ConfigurationError, FilesystemError, TransportError
from .archive import ensure_dir

logger = logging.getLogger(__name__)


async def _fetch_bytes(session: aiohttp.ClientSession, url: str) -> bytes:
    async with session.get(url) as response:
        if not 200 <= response.status < 300:
            raise TransportError(f"HTTP {response.status} downloading {url}")
        return await response.read()


async def download_dataset(
    url: str,
    filename: Union[str, Path],
    timeout: float = 60,
    session: Optional[aiohttp.ClientSession] = None,
) -> Path:
    """Download ``url`` and write the payload verbatim to ``filename``.

    Raises:
        TransportError: If the request fails, times out or returns an error status.
        FilesystemError: If the payload cannot be written.
    """
    path = Path(filename)
    logger.info(f"Downloading dataset from {url}")

    try:
        if session is not None:
            payload = await _fetch_bytes(session, url)
        else:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=timeout)
            ) as own_session:
                payload = await _fetch_bytes(own_session, url)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise TransportError(f"Error downloading from {url}: {e}") from e

    try:
        await asyncio.to_thread(path.write_bytes, payload)
    except OSError as e:
        raise FilesystemError(f"Error writing file {path}: {e}") from e

    logger.debug(f"Downloaded {len(payload)} bytes to {path}")
    return path


async def get_dataset(options, session: Optional[aiohttp.ClientSession] = None) -> Path:
    """Provision the raw data directory and download the dataset file into it."""
    if not options.get_dataset_endpoint:
        raise ConfigurationError("GET_DATASET_ENDPOINT is not configured")

    raw_data_dir = Path(options.raw_data_dir)
    ensure_dir(raw_data_dir)

    return await download_dataset(
        options.get_dataset_endpoint,
        raw_data_dir / options.data_file,
        timeout=options.http_timeout,
        session=session,
    )
