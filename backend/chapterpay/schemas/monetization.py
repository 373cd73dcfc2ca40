from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RecordAdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chapter_id: Optional[str] = Field(default=None, alias="chapterId")
    ad_type: Optional[str] = Field(default=None, alias="adType")


class CoinGrantRequest(BaseModel):
    amount: int
    reason: str = "Admin grant"
    description: Optional[str] = None
