from typing import Optional

from pydantic import BaseModel


class UploadRecord(BaseModel):
    success: bool
    filename: str
    size: int


class ChunkStatus(BaseModel):
    success: bool
    message: str
    complete: bool
    chunk_index: int
    total_chunks: int
    filename: Optional[str] = None
    size: Optional[int] = None


class DeleteResult(BaseModel):
    success: bool
    message: str
    kind: str
