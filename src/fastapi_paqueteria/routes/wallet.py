"""Wallet endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fastapi_paqueteria.config import PaqueteriaConfig
from fastapi_paqueteria.dependencies import (
    get_config,
    get_current_user_id,
    get_ledger,
    get_recharge_workflow,
)
from fastapi_paqueteria.recharge import RechargeWorkflow
from fastapi_paqueteria.schemas import (
    ApiResponse,
    BalanceResponse,
    RechargeRequestResponse,
    RechargeSubmitRequest,
    TransactionResponse,
)
from fastapi_paqueteria.wallet import WalletLedger

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/balance", response_model=ApiResponse[BalanceResponse])
async def get_balance(
    user_id: str = Depends(get_current_user_id),
    ledger: WalletLedger = Depends(get_ledger),
    config: PaqueteriaConfig = Depends(get_config),
) -> ApiResponse[BalanceResponse]:
    balance = await ledger.get_balance(user_id)
    return ApiResponse(
        data=BalanceResponse(balance=balance, currency=config.currency)
    )


@router.get(
    "/transactions", response_model=ApiResponse[list[TransactionResponse]]
)
async def list_transactions(
    user_id: str = Depends(get_current_user_id),
    ledger: WalletLedger = Depends(get_ledger),
) -> ApiResponse[list[TransactionResponse]]:
    transactions = await ledger.list_transactions(user_id)
    return ApiResponse(
        data=[TransactionResponse.model_validate(t) for t in transactions]
    )


@router.post("/recharge", response_model=ApiResponse[RechargeRequestResponse])
async def submit_recharge(
    body: RechargeSubmitRequest,
    user_id: str = Depends(get_current_user_id),
    workflow: RechargeWorkflow = Depends(get_recharge_workflow),
) -> ApiResponse[RechargeRequestResponse]:
    """Queue a top-up for admin approval."""
    request = await workflow.submit(
        user_id,
        body.amount,
        payment_method=body.payment_method,
        payment_reference=body.payment_reference,
        notes=body.notes,
    )
    return ApiResponse(data=RechargeRequestResponse.model_validate(request))


@router.get(
    "/recharge", response_model=ApiResponse[list[RechargeRequestResponse]]
)
async def list_my_recharges(
    user_id: str = Depends(get_current_user_id),
    workflow: RechargeWorkflow = Depends(get_recharge_workflow),
) -> ApiResponse[list[RechargeRequestResponse]]:
    requests = await workflow.list_for_user(user_id)
    return ApiResponse(
        data=[RechargeRequestResponse.model_validate(r) for r in requests]
    )
