# trust_safety/web/schemas.py
"""
Тела запросов HTTP API (camelCase на проводе).
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class JobMessageRequest(_RequestModel):
    text: str = Field(min_length=1)
    job_status: Optional[str] = Field(default=None, alias="jobStatus")


class BidMessageRequest(_RequestModel):
    message: str = Field(min_length=1)


class JobPostRequest(_RequestModel):
    title: str = Field(min_length=1)
    description: str = ""
    location: Optional[str] = None
    job_id: Optional[int] = Field(default=None, alias="jobId")
