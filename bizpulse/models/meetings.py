"""
CRM meeting schema (crm_meetings table)
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class Meeting(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    created_by: str
    status: Literal["scheduled", "completed", "canceled"] = "scheduled"
    location: Optional[str] = None
    created_at: Optional[datetime] = None
