from pydantic import BaseModel, ConfigDict, Field, field_validator

from relay_api.app.constants import EnqueueStatus


class SubscriberPostRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(..., min_length=3, max_length=254)
    first_name: str = Field("", alias="firstName", max_length=255)
    last_name: str = Field("", alias="lastName", max_length=255)

    @field_validator("email")
    @classmethod
    def _email_shape(cls, value: str) -> str:
        value = value.strip()
        local, sep, domain = value.rpartition("@")
        if not sep or not local or "." not in domain:
            raise ValueError("invalid email address")
        return value


class EnqueueResponse(BaseModel):
    status: str = EnqueueStatus.QUEUED
    request_id: str
