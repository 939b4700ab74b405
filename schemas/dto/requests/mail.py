"""
Request DTOs for mail operations on the gateway.

SendMessageRequest   — POST /api/v1/{provider}/mail/messages
ModifyLabelsRequest  — POST /api/v1/google/mail/messages/{message_id}/modify
CreateLabelRequest   — POST /api/v1/google/mail/labels
CreateDraftRequest   — POST /api/v1/google/mail/drafts
UpdateMessageRequest — PATCH /api/v1/microsoft/mail/messages/{message_id}
"""

from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Recipients = Union[str, list[str]]


def _as_list(value: Optional[Recipients]) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: Recipients
    subject: str
    body: str
    html: Optional[str] = None
    cc: Optional[Recipients] = None
    bcc: Optional[Recipients] = None
    reply_to: Optional[str] = Field(default=None, alias="replyTo")

    @field_validator("to", mode="after")
    @classmethod
    def _to_not_empty(cls, v: Recipients) -> Recipients:
        if not _as_list(v):
            raise ValueError("at least one recipient is required")
        return v

    @property
    def to_list(self) -> list[str]:
        return _as_list(self.to)

    @property
    def cc_list(self) -> list[str]:
        return _as_list(self.cc)

    @property
    def bcc_list(self) -> list[str]:
        return _as_list(self.bcc)


class CreateDraftRequest(SendMessageRequest):
    pass


class ModifyLabelsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    add_label_ids: list[str] = Field(default_factory=list, alias="addLabelIds")
    remove_label_ids: list[str] = Field(default_factory=list, alias="removeLabelIds")


class CreateLabelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    message_list_visibility: Optional[Literal["show", "hide"]] = Field(
        default=None, alias="messageListVisibility"
    )
    label_list_visibility: Optional[
        Literal["labelShow", "labelShowIfUnread", "labelHide"]
    ] = Field(default=None, alias="labelListVisibility")

    @field_validator("name", mode="after")
    @classmethod
    def _name_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v


class UpdateMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_read: Optional[bool] = Field(default=None, alias="isRead")
    categories: Optional[list[str]] = None
