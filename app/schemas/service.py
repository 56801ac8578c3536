from pydantic import BaseModel
from typing import Optional


class ServiceResponse(BaseModel):
    service_id: str
    name: str
    description: str
    price: float
    image_url: Optional[str] = None

    class Config:
        from_attributes = True
