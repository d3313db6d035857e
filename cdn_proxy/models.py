from pydantic import BaseModel


class HealthStatus(BaseModel):
    status: str
    service: str
    version: str
    timestamp: str


class ServiceInfo(BaseModel):
    status: str
    message: str
    timestamp: str
