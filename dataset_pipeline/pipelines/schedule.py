"""Scrape window and crawl budget resolution."""

import logging
from datetime import date
from typing import Any, Dict, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.config import ScheduleMode
from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DAILY_DATE_FORMAT = "%m/%d/%Y"


class SchedulePayload(BaseModel):
    """Schedule fields overlaid onto the scrape task input.

    Computed fresh for every trigger; serialized with the task's camelCase names.
    """

    model_config = ConfigDict(populate_by_name=True)

    start_date: str = Field(..., alias="startDate")
    end_date: str = Field(..., alias="endDate")
    max_requests_per_crawl: int = Field(..., ge=0, alias="maxRequestsPerCrawl")
    max_request_depth: int = Field(..., ge=0, alias="maxRequestDepth")
    num_of_days: int = Field(default=1, ge=1, exclude=True)

    def to_task_fields(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def _parse_day(value: str, name: str) -> date:
    try:
        return date_parser.parse(value).date()
    except (ValueError, OverflowError) as e:
        raise ConfigurationError(f"Invalid {name} {value!r}: {e}") from e


def count_days(start_date: str, end_date: str) -> int:
    """Number of calendar days in the inclusive window, in either order."""
    start = _parse_day(start_date, "start date")
    end = _parse_day(end_date, "end date")
    return abs((end - start).days) + 1


def get_daily_schedule(
    requests_per_day: int, request_depths_per_day: int, today: Optional[date] = None
) -> SchedulePayload:
    """One day's window and unscaled budget."""
    today = today or date.today()
    day = today.strftime(DAILY_DATE_FORMAT)
    return SchedulePayload(
        start_date=day,
        end_date=day,
        max_requests_per_crawl=requests_per_day,
        max_request_depth=request_depths_per_day,
    )


def get_date_range_schedule(
    requests_per_day: int, request_depths_per_day: int, start_date: str, end_date: str
) -> SchedulePayload:
    """Caller's literal window with budgets scaled by its length in days."""
    num_of_days = count_days(start_date, end_date)
    return SchedulePayload(
        start_date=start_date,
        end_date=end_date,
        max_requests_per_crawl=requests_per_day * num_of_days,
        max_request_depth=request_depths_per_day * num_of_days,
        num_of_days=num_of_days,
    )


def resolve_schedule(options, today: Optional[date] = None) -> SchedulePayload:
    """Resolve the schedule for the mode selected in ``options``.

    Raises:
        ConfigurationError: If the mode is ambiguous or unset, or the dates or budgets are invalid.
    """
    mode = options.schedule_mode

    try:
        if mode == ScheduleMode.DAILY:
            payload = get_daily_schedule(
                options.requests_per_day, options.request_depths_per_day, today
            )
        else:
            payload = get_date_range_schedule(
                options.requests_per_day,
                options.request_depths_per_day,
                options.start_date,
                options.end_date,
            )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid crawl budget: {e}") from e

    logger.debug(f"Resolved {mode.value} schedule: {payload.to_task_fields()}")
    return payload
