"""
Client registry API endpoints.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from crm_billing.core.database import get_db
from crm_billing.core.auth import get_current_caller
from crm_billing.models.client import ClientStatus
from crm_billing.services.access import CallerContext
from crm_billing.services.catalog import (
    list_clients,
    get_client_for_caller,
    create_client,
    update_client,
    get_client_modules,
)

router = APIRouter()


class CreateClientRequest(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    gst_number: Optional[str] = None
    status: str = ClientStatus.ACTIVE
    notes: Optional[str] = None


class UpdateClientRequest(BaseModel):
    company_name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    gst_number: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class ClientResponse(BaseModel):
    id: int
    company_name: str
    contact_person: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    gst_number: Optional[str]
    status: str
    notes: Optional[str]
    created_by: Optional[int]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class ClientListResponse(BaseModel):
    items: List[ClientResponse]
    total: int
    limit: int
    offset: int


class ClientModulesResponse(BaseModel):
    client_id: int
    modules: dict[str, bool]


@router.get("/", response_model=ClientListResponse)
async def list_all_clients(
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    rows, total = list_clients(db, caller, status=status_filter, search=search, limit=limit, offset=offset)
    return ClientListResponse(
        items=[ClientResponse.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client_detail(
    client_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    return get_client_for_caller(db, caller, client_id)


@router.post("/", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_new_client(
    request: CreateClientRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    """Register a client; the caller becomes its owner."""
    return create_client(db, caller, **request.model_dump())


@router.put("/{client_id}", response_model=ClientResponse)
async def update_existing_client(
    client_id: int,
    request: UpdateClientRequest,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    """Partially update a client; status changes need admin or manager."""
    return update_client(db, caller, client_id, request.model_dump(exclude_unset=True))


@router.get("/{client_id}/modules", response_model=ClientModulesResponse)
async def client_modules(
    client_id: int,
    db: Session = Depends(get_db),
    caller: CallerContext = Depends(get_current_caller),
):
    """Module entitlements from the client's current plan."""
    get_client_for_caller(db, caller, client_id)
    return ClientModulesResponse(client_id=client_id, modules=get_client_modules(db, client_id))
