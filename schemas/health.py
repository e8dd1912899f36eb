from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    message: str


class StatsResponse(BaseModel):
    clients: int
    groups: int
    messages: int
