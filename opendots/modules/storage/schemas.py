from pydantic import BaseModel
from typing import List, Optional


class UploadResponse(BaseModel):
    success: bool = True
    url: str
    key: str


class D1StatusResponse(BaseModel):
    status: str  # available | not_available | error
    message: str
    enabled: bool
    tables: List[str] = []
    profile_count: Optional[int] = None
    error: Optional[str] = None
