"""Submit a remote scrape task with schedule fields overlaid on its input template."""

import asyncio
import copy
import logging
from datetime import date
from typing import Any, Dict, Optional

import aiohttp

from ..core.errors import ConfigurationError, TransportError
from .schedule import resolve_schedule

logger = logging.getLogger(__name__)

# Most verbose log level understood by the scrape task
DRY_RUN_LOG_LEVEL = 5


def build_task_input(
    options, base_config: Dict[str, Any], today: Optional[date] = None
) -> Dict[str, Any]:
    """Overlay dry-run and schedule fields onto a copy of ``base_config``.

    Raises:
        ConfigurationError: If no valid schedule mode is configured.
    """
    data = copy.deepcopy(base_config)

    if options.dry_run:
        data["isTestRun"] = True
        data["logLevel"] = DRY_RUN_LOG_LEVEL

    schedule = resolve_schedule(options, today)
    data.update(schedule.to_task_fields())
    return data


async def _post_task(session: aiohttp.ClientSession, url: str, data: Dict[str, Any]) -> int:
    async with session.post(url, json=data) as response:
        if not 200 <= response.status < 300:
            body = await response.text()
            raise TransportError(f"HTTP {response.status} submitting task to {url}: {body}")
        return response.status


async def trigger_scrape(
    options,
    base_config: Dict[str, Any],
    session: Optional[aiohttp.ClientSession] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Submit one scrape task. Only the submission is awaited, not the task itself.

    Nothing is submitted when the schedule is misconfigured.

    Raises:
        ConfigurationError: If the endpoint or schedule mode is not configured.
        TransportError: If the submission fails.
    """
    url = options.run_task_endpoint
    if not url:
        raise ConfigurationError("RUN_TASK_ENDPOINT is not configured")

    logger.info(f"Input config: {base_config}")
    data = build_task_input(options, base_config, today)
    logger.debug(f"Running task with options: {data}")

    try:
        if session is not None:
            status = await _post_task(session, url, data)
        else:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=options.http_timeout)
            ) as own_session:
                status = await _post_task(own_session, url, data)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise TransportError(f"Error submitting task to {url}: {e}") from e

    logger.info(f"Submitted scrape task to {url} (HTTP {status})")
    return {"endpoint": url, "status": status, "task_input": data}
