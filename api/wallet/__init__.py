"""Wallet, VNPay payment and wallet administration endpoints."""

import logging
import math
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from auth import get_current_user, require_admin
from auth.models import User
from gateway import get_client_ip
from wallet import TransactionQuery, TransactionStatus, TransactionType
from wallet.models import AdminBalanceRequest, SettleRequest, TopupRequest, WithdrawRequest
from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/wallet",
    tags=["Wallet"]
)

payments_router = APIRouter(
    prefix="/payments/vnpay",
    tags=["Payments"]
)

admin_router = APIRouter(
    prefix="/admin/wallet",
    tags=["Admin"]
)


@router.get("/balance")
async def get_balance(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    return {"balance": await services.wallet.balance(user.id)}


@router.get("/transactions")
async def get_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[TransactionType] = None,
    status: Optional[TransactionStatus] = None,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Get the caller's wallet history, newest first."""
    transactions, total = await services.wallet.list_transactions(
        TransactionQuery(user_id=user.id, type=type, status=status, page=page, limit=limit)
    )
    return {
        "data": transactions,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit)
        }
    }


@router.post("/withdraw")
async def withdraw(
    request: WithdrawRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Request a payout to a bank account."""
    transaction, balance = await services.wallet.withdraw(
        user.id, request.amount, request.bank_name, request.bank_account
    )
    return {"transaction": transaction, "balance": balance}


@payments_router.post("/create")
async def create_topup(
    body: TopupRequest,
    request: Request,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Start a VNPay top-up and return the URL to redirect the payer to."""
    client_ip = get_client_ip(
        request.headers.get("x-forwarded-for"),
        request.client.host if request.client else None
    )
    result = await services.reconciler.create_topup(
        user.id,
        body.amount,
        client_ip,
        bank_code=body.bank_code,
        language=body.language,
        order_type=body.order_type
    )
    return result.model_dump(by_alias=True)


@payments_router.get("/return")
async def vnpay_return(request: Request, services: Services = Depends(get_services)):
    """Browser redirect back from VNPay."""
    url = await services.reconciler.handle_return(dict(request.query_params))
    return RedirectResponse(url, status_code=302)


@payments_router.get("/ipn")
async def vnpay_ipn(request: Request, services: Services = Depends(get_services)):
    """Server-to-server payment notification from VNPay."""
    return await services.reconciler.handle_ipn(dict(request.query_params))


@payments_router.get("/status/{order_id}")
async def transaction_status(
    order_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    transaction = await services.reconciler.transaction_status(user.id, order_id)
    return {
        "orderId": order_id,
        "amount": transaction.amount,
        "status": transaction.status,
        "description": transaction.description,
        "createdAt": transaction.created_at
    }


@admin_router.post("/add-balance")
async def add_balance(
    request: AdminBalanceRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    transaction, balance = await services.wallet.admin_adjust(
        request.user_id, request.amount, add=True, description=request.description
    )
    logger.info(f"Admin {admin.id} added {request.amount} VND to {request.user_id}")
    return {"transaction": transaction, "balance": balance}


@admin_router.post("/deduct-balance")
async def deduct_balance(
    request: AdminBalanceRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    transaction, balance = await services.wallet.admin_adjust(
        request.user_id, request.amount, add=False, description=request.description
    )
    logger.info(f"Admin {admin.id} deducted {request.amount} VND from {request.user_id}")
    return {"transaction": transaction, "balance": balance}


@admin_router.put("/transactions/{transaction_id}/status")
async def update_transaction_status(
    transaction_id: UUID,
    request: SettleRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    """Settle a PENDING transaction by hand."""
    return await services.wallet.settle_transaction(transaction_id, request.status, request.note)


__all__ = ['router', 'payments_router', 'admin_router']
