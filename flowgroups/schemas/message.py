from typing import List, Literal

from pydantic import BaseModel, Field


class AttachmentCreate(BaseModel):
    file_path: str = Field(min_length=1, max_length=500)
    file_type: str = Field(min_length=1, max_length=20)
    file_size: int = Field(ge=0)


class MessageCreate(BaseModel):
    content: str = Field(min_length=1)
    message_type: Literal["text", "image", "video", "file"] = "text"
    attachments: List[AttachmentCreate] = []


class MessagePosted(BaseModel):
    message_id: str
    group_id: str
    message_count: int
