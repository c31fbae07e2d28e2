from pydantic import BaseModel, Field


class WebhookAck(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    status: str
    service: str
    registered_users: int = Field(ge=0)
    active_sessions: int = Field(ge=0)
