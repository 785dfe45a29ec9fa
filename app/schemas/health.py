from pydantic import Field

from app.schemas.my_base_model import CustomBaseModel


class HealthServices(CustomBaseModel):
    database: str = "healthy"


class HealthCheck(CustomBaseModel):
    status: str = "healthy"
    version: str = ""
    timestamp: str = ""
    services: HealthServices = Field(default_factory=HealthServices)
