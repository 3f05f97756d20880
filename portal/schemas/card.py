import json
from datetime import datetime, timezone
from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, field_validator


class ScheduleEntry(BaseModel):
    start_date: datetime = Field(..., alias="startDate")
    end_date: datetime | None = Field(None, alias="endDate")
    image: str

    class Config:
        populate_by_name = True
        extra = "allow"

    @field_validator("start_date", "end_date")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("image")
    @classmethod
    def _require_image(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("schedule entry image must not be empty")
        return value


_ENTRY_LIST = TypeAdapter(list[ScheduleEntry])


def parse_schedule_entries(raw: str | list) -> list[ScheduleEntry]:
    """Parse a stored schedule blob (JSON text) or a decoded list.

    Raises ``ValueError`` (pydantic's ``ValidationError`` included) when the
    data is not a JSON array of valid entries.
    """
    if isinstance(raw, str):
        return _ENTRY_LIST.validate_json(raw)
    return _ENTRY_LIST.validate_python(raw)


def dump_schedule_entries(entries: list[ScheduleEntry]) -> str | None:
    # An empty list is stored as NULL, never as "[]".
    if not entries:
        return None
    return _ENTRY_LIST.dump_json(entries, by_alias=True, exclude_none=True).decode("utf-8")


_TIMESTAMP = TypeAdapter(datetime)


def parse_timestamp(value) -> datetime | None:
    """Read one stored ``startDate``/``endDate`` value; ``None`` if unreadable."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        parsed = _TIMESTAMP.validate_python(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def load_schedule_blob(raw: str) -> list:
    """Decode a stored schedule blob without validating individual entries.

    Raises ``ValueError`` when the text is not JSON or not a JSON array.
    """
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("schedule data is not a JSON array")
    return data


class CardOut(BaseModel):
    id: int
    title: str
    subtitle: str | None = None
    image: str | None = None
    schedule_weekdays: str | None = Field(
        None,
        validation_alias=AliasChoices("schedule_weekdays", "scheduleWeekdays"),
        serialization_alias="scheduleWeekdays",
    )
    created_at: datetime | None = Field(
        None,
        validation_alias=AliasChoices("created_at", "createdAt"),
        serialization_alias="createdAt",
    )

    class Config:
        from_attributes = True


class CardCreate(BaseModel):
    title: str = Field(..., min_length=1)
    subtitle: str | None = None
    image: str | None = None


class CardUpdate(BaseModel):
    title: str | None = Field(None, min_length=1)
    subtitle: str | None = None
    image: str | None = None


class SchedulesUpdate(BaseModel):
    schedules: list | str | None = None
    schedule_weekdays: list | str | None = Field(None, alias="scheduleWeekdays")

    class Config:
        populate_by_name = True

    def payload(self) -> list | str | None:
        return self.schedules if self.schedules is not None else self.schedule_weekdays
