from datetime import tzinfo

from pydantic import BaseModel, field_validator
from pytz import UnknownTimeZoneError, timezone


class ReminderConfigModel(BaseModel):
    timezone: str = "UTC"
    """IANA zone the query dates are expressed in, e.g. "Europe/Paris"."""

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            timezone(value)
        except UnknownTimeZoneError as e:
            raise ValueError(f'Unknown timezone "{value}"') from e
        return value

    def tz(self) -> tzinfo:
        return timezone(self.timezone)
