from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ExtractInput(BaseModel):
    url: str = Field(min_length=1, max_length=2048)


class ValidateInput(BaseModel):
    url: str = Field(min_length=1, max_length=2048)


class BatchInput(BaseModel):
    # Entries are validated one by one so a bad entry fails alone.
    urls: list[Any]
