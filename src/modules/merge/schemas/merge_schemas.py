from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class MergeRequest(BaseModel):
    sessionId: str = Field(min_length=1)
    sourcePaths: List[str]
    outputName: Optional[str] = None
    rotations: Optional[Dict[int, int]] = None


class PromoteMergeRequest(BaseModel):
    tempResultId: str
    finalFileName: str = Field(min_length=1)


class StagedBlobResponse(BaseModel):
    path: str
    fileName: Optional[str] = None
    sizeBytes: int
    contentType: str
    createdAt: datetime


class MergeSessionResponse(BaseModel):
    sessionId: str
    state: str
    createdAt: datetime
    expiresAt: datetime
    files: List[StagedBlobResponse]
    tempResultId: Optional[str] = None
    totalPages: Optional[int] = None
