"""
Service Catalogue

Read-only list of the cuts the shop offers. Prices are in the payment
currency (ETB).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from ..exceptions import NotFoundError


@dataclass(frozen=True)
class Service:
    service_id: str
    name: str
    description: str
    price: Decimal
    image_url: Optional[str] = None


SERVICES: List[Service] = [
    Service("1", "Fade Cut", "Clean taper fade with smooth finish", Decimal("300"), "/images/fade-cut.jpg"),
    Service("2", "Classic Trim", "Neat haircut with simple styling", Decimal("250"), "/images/classic-trim.jpg"),
    Service("3", "Kids Cut", "Gentle and stylish cut for children", Decimal("200"), "/images/kids-cut.jpg"),
    Service("4", "Beard Line-Up", "Clean beard trim and edge", Decimal("200"), "/images/beard-lineup.jpg"),
    Service("5", "Full Package", "Haircut + Beard Trim combo", Decimal("500"), "/images/full-package.jpg"),
    Service("6", "Pattern Cut", "Custom design / lines", Decimal("400"), "/images/pattern-cut.jpg"),
    Service("7", "Afro Shaping", "Shape and style for natural hair", Decimal("350"), "/images/afro-shaping.jpg"),
]


def list_services() -> List[Service]:
    return list(SERVICES)


def get_service(service_id: str) -> Service:
    for service in SERVICES:
        if service.service_id == service_id:
            return service
    raise NotFoundError("Service not found")


def find_service_by_name(name: str) -> Optional[Service]:
    """Case-insensitive lookup by display name."""
    wanted = name.strip().lower()
    for service in SERVICES:
        if service.name.lower() == wanted:
            return service
    return None
