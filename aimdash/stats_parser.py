from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime

STATS_FILE_DATE_RE = re.compile(
    r"(?P<year>\d{4})\.(?P<month>\d{2})\.(?P<day>\d{2})-"
    r"(?P<hour>\d{2})\.(?P<minute>\d{2})\.(?P<second>\d{2})"
)
KEY_VALUE_SEPARATOR = ":,"


@dataclass(slots=True)
class ParsedStatsFile:
    file_name: str
    scenario_name: str
    score: float
    completed_at: datetime | None


def parse_completion_time(file_name: str) -> datetime | None:
    match = STATS_FILE_DATE_RE.search(file_name)
    if not match:
        return None
    try:
        local_dt = datetime(
            int(match.group("year")),
            int(match.group("month")),
            int(match.group("day")),
            int(match.group("hour")),
            int(match.group("minute")),
            int(match.group("second")),
        )
    except ValueError:
        return None
    # Stats exports are named in the player's local time.
    return local_dt.astimezone()


def _key_values(content: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for raw_row in content.splitlines():
        row = raw_row.strip()
        if KEY_VALUE_SEPARATOR not in row:
            continue
        key, _, value = row.partition(KEY_VALUE_SEPARATOR)
        key = key.strip().lower()
        value = value.strip()
        if key and value:
            values[key] = value
    return values


def parse_stats_csv(content: str, file_name: str = "") -> ParsedStatsFile | None:
    values = _key_values(content)
    scenario_name = values.get("scenario")
    score_raw = values.get("score")
    if not scenario_name or not score_raw:
        return None
    try:
        score = float(score_raw.split(",")[0])
    except ValueError:
        return None
    if not math.isfinite(score):
        return None
    return ParsedStatsFile(
        file_name=file_name,
        scenario_name=scenario_name,
        score=score,
        completed_at=parse_completion_time(file_name),
    )
