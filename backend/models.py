from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

# Weekdays are numbered 0=Sunday .. 6=Saturday throughout.
NOTIFY_AT_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
MAX_INTERVAL = 1000


class _PatternBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    interval: int = Field(default=1, gt=0, le=MAX_INTERVAL)
    end_date: Optional[date] = None  # no occurrences strictly after this date
    occurrences: Optional[int] = Field(default=None, gt=0)  # cap on completed occurrences
    notify_at: Optional[str] = Field(default="09:00", pattern=NOTIFY_AT_PATTERN)


class _DaysOfWeekMixin(BaseModel):
    days_of_week: Optional[list[Annotated[int, Field(ge=0, le=6)]]] = None

    @field_validator("days_of_week")
    @classmethod
    def _dedupe_days(cls, days):
        if days is None:
            return None
        return list(dict.fromkeys(days))


class DailyPattern(_PatternBase):
    type: Literal["daily"] = "daily"


class WeeklyPattern(_PatternBase, _DaysOfWeekMixin):
    type: Literal["weekly"] = "weekly"


class MonthlyPattern(_PatternBase):
    type: Literal["monthly"] = "monthly"
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)


class YearlyPattern(_PatternBase):
    type: Literal["yearly"] = "yearly"
    month_of_year: Optional[int] = Field(default=None, ge=1, le=12)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)


class CustomPattern(_PatternBase, _DaysOfWeekMixin):
    type: Literal["custom"] = "custom"


RecurringPattern = Annotated[
    Union[DailyPattern, WeeklyPattern, MonthlyPattern, YearlyPattern, CustomPattern],
    Field(discriminator="type"),
]

_pattern_adapter = TypeAdapter(RecurringPattern)


def validate_pattern(data) -> RecurringPattern:
    """Build a pattern from a dict (or pass one through). Raises ValidationError."""
    if isinstance(data, _PatternBase):
        return data
    return _pattern_adapter.validate_python(data)


def is_valid_pattern(data) -> bool:
    try:
        validate_pattern(data)
    except ValidationError:
        return False
    return True


def pattern_to_json(pattern: RecurringPattern) -> str:
    return _pattern_adapter.dump_json(pattern).decode()


def pattern_from_json(raw: Optional[str]) -> Optional[RecurringPattern]:
    if not raw:
        return None
    return _pattern_adapter.validate_json(raw)


class Task(BaseModel):
    id: str
    title: str
    completed: bool = False
    completed_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    reminder_at: Optional[datetime] = None
    recurring_pattern: Optional[RecurringPattern] = None
    completed_occurrences: int = 0  # carried forward along a recurring series
    created_at: datetime

def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Stored times are naive local time, like datetime.now(); convert aware input."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    due_date: Optional[datetime] = None
    reminder_at: Optional[datetime] = None
    recurring_pattern: Optional[RecurringPattern] = None

    @field_validator("due_date", "reminder_at")
    @classmethod
    def _local_time(cls, value):
        return to_local_naive(value)

class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    completed: Optional[bool] = None
    due_date: Optional[datetime] = None
    reminder_at: Optional[datetime] = None
    recurring_pattern: Optional[RecurringPattern] = None

    @field_validator("due_date", "reminder_at")
    @classmethod
    def _local_time(cls, value):
        return to_local_naive(value)


class CompletionRecord(BaseModel):
    id: int
    task_id: str
    scheduled_date: date
    completed_at: Optional[datetime] = None  # None = not completed (missed or pending)
    created_at: datetime
    task_title: Optional[str] = None


OccurrenceStatus = Literal["completed", "missed", "pending"]


class Occurrence(BaseModel):
    scheduled_date: date
    completed_at: Optional[datetime] = None
    status: OccurrenceStatus


class RecurringOccurrences(BaseModel):
    task: Task
    matching_dates: list[date]


class DailyStats(BaseModel):
    date: date
    regular_completed: int = 0
    recurring_completed: int = 0
    recurring_missed: int = 0


class AnalyticsData(BaseModel):
    total_regular_completed: int
    total_recurring_completed: int
    total_recurring_missed: int
    completion_rate: int  # percentage 0-100
    current_streak: int
    daily_breakdown: list[DailyStats]


class CompleteRecurringResult(BaseModel):
    completed: bool = True
    next_task: Optional[Task] = None
    message: Optional[str] = None


class PastCompletionUpdate(BaseModel):
    task_id: str
    scheduled_date: date
    completed: bool


class PastCompletionResult(BaseModel):
    action: Literal["created", "updated"]
    record: CompletionRecord


class ParseRequest(BaseModel):
    text: str

class ParseResponse(BaseModel):
    pattern: Optional[RecurringPattern] = None
    description: Optional[str] = None

class FormatRequest(BaseModel):
    pattern: RecurringPattern

class FormatResponse(BaseModel):
    description: str
