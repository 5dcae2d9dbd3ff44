from pydantic import BaseModel, Field, field_validator

from carecircle.models import HealthAlert, UserType


class AlertCreatedDetail(BaseModel):
    """`detail` of an EventBridge AlertCreated event."""

    alert: HealthAlert
    user_id: str = Field(alias="userId")

    @field_validator("user_id")
    @classmethod
    def user_id_must_not_be_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("userId must not be empty")
        return v.strip()


class AuthorizerContext(BaseModel):
    """Caller identity placed in requestContext.authorizer by the API authorizer."""

    principal_id: str = Field(alias="principalId", min_length=1)
    user_type: UserType = Field(alias="userType")
