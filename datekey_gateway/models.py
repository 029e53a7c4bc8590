from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Dict, List, Optional, Union

from .security import ValidationError, validate_header_value, validate_recipients


class SendEmailRequest(BaseModel):
    to: Union[str, List[str]]
    subject: str
    text: Optional[str] = None
    html: Optional[str] = None

    @field_validator("to")
    @classmethod
    def _recipients(cls, v):
        try:
            return validate_recipients(v, "to")
        except ValidationError as e:
            raise ValueError(e.message) from e

    @field_validator("subject")
    @classmethod
    def _subject(cls, v):
        try:
            return validate_header_value(v, "subject")
        except ValidationError as e:
            raise ValueError(e.message) from e

    @model_validator(mode="after")
    def _body_present(self):
        if not self.text and not self.html:
            raise ValueError("either text or html is required")
        return self

    def recipients(self) -> List[str]:
        # "to" is normalized to a list by the validator
        return list(self.to)


class KeysResponse(BaseModel):
    success: bool = True
    keys: Dict[str, str] = Field(default_factory=dict)


class SendEmailResponse(BaseModel):
    success: bool = True
    message: str
    messageId: str


class AvailabilityResponse(BaseModel):
    success: bool = True
    available: bool
    message: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str


class ErrorResponse(BaseModel):
    error: str
    message: str
