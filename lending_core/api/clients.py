"""
Client management endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .dependencies import PageParams, get_lending_system, get_page_params
from .schemas import (
    CreateClientRequest,
    UpdateClientRequest,
    success,
    client_to_response,
    summary_to_response,
    loan_to_response
)
from ..status import parse_status_filter
from ..system import LendingSystem


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_client(
    request: CreateClientRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Register a new client"""
    client = system.client_manager.create_client(
        first_name=request.first_name,
        last_name=request.last_name,
        national_id=request.national_id,
        phone=request.phone,
        email=request.email,
        address=request.address
    )
    return success(client_to_response(client))


@router.get("")
async def list_clients(
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    paging: PageParams = Depends(get_page_params),
    system: LendingSystem = Depends(get_lending_system)
):
    """List clients with their loan aggregates"""
    page = system.loan_ledger.list_clients(
        status=parse_status_filter(status_filter),
        search=search,
        page=paging.page,
        limit=paging.limit
    )
    return success([summary_to_response(summary) for summary in page.items], page)


@router.get("/{client_id}")
async def get_client(
    client_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Get a client with aggregates and their loans"""
    client = system.client_manager.require_client(client_id)
    result = summary_to_response(system.loan_ledger.summarize_client(client))
    result["loans"] = [loan_to_response(loan) for loan in system.loan_ledger.get_client_loans(client.id)]
    return success(result)


@router.put("/{client_id}")
async def update_client(
    client_id: str,
    request: UpdateClientRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Update client identity and contact information"""
    client = system.client_manager.update_client(
        client_id=client_id,
        first_name=request.first_name,
        last_name=request.last_name,
        national_id=request.national_id,
        phone=request.phone,
        email=request.email,
        address=request.address
    )
    return success(client_to_response(client))


@router.delete("/{client_id}")
async def delete_client(
    client_id: str,
    cascade: bool = False,
    system: LendingSystem = Depends(get_lending_system)
):
    """Delete a client; loans and payments go too only with cascade=true"""
    deletion = system.loan_ledger.delete_client(client_id, cascade=cascade)
    return success({
        "client_id": deletion.client.id,
        "loans_deleted": deletion.loans_deleted,
        "payments_deleted": deletion.payments_deleted
    })


@router.post("/{client_id}/delinquency")
async def mark_delinquent(
    client_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Flag a client and their pending loans as delinquent"""
    client, loans_marked = system.loan_ledger.mark_delinquent(client_id)
    return success({"client": client_to_response(client), "loans_marked": loans_marked})


@router.post("/{client_id}/status")
async def recompute_status(
    client_id: str,
    system: LendingSystem = Depends(get_lending_system)
):
    """Re-derive a client's status from their loans"""
    client = system.loan_ledger.recompute_client_status(client_id)
    return success(client_to_response(client))
