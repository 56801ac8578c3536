from fastapi import APIRouter
from typing import List

from ..schemas.service import ServiceResponse
from ..services.catalogue import get_service, list_services

router = APIRouter(prefix="/api/services", tags=["Services"])


@router.get("", response_model=List[ServiceResponse])
@router.get("/", response_model=List[ServiceResponse])
def get_services():
    return list_services()


@router.get("/{service_id}", response_model=ServiceResponse)
def get_service_by_id(service_id: str):
    return get_service(service_id)
