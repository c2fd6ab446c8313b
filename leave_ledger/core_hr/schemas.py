"""Core HR Pydantic v2 schemas — holiday calendar.

Naming conventions:
  - *Create → request bodies (write)
  - *Out    → response bodies (read)
"""


import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leave_ledger.common.constants import Region


# ═════════════════════════════════════════════════════════════════════
# Holiday
# ═════════════════════════════════════════════════════════════════════


class HolidayCreate(BaseModel):
    date: date
    region: Region
    description: str = Field(..., min_length=1, max_length=150)
    year: int = Field(..., ge=2000, le=2100)

    @model_validator(mode="after")
    def date_in_year(self) -> "HolidayCreate":
        if self.date.year != self.year:
            raise ValueError(f"Holiday date {self.date} is not in year {self.year}.")
        return self


class HolidayOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    holiday_date: date = Field(serialization_alias="date")
    region: Region
    description: str
    year: int
    created_at: Optional[datetime] = None
