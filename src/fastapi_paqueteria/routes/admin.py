"""Admin endpoints: recharge approvals, users and margin."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from fastapi_paqueteria.dependencies import (
    get_margin,
    get_recharge_workflow,
    get_storage,
    require_admin,
)
from fastapi_paqueteria.margin import MarginPolicy
from fastapi_paqueteria.protocols import Storage
from fastapi_paqueteria.recharge import RechargeWorkflow
from fastapi_paqueteria.schemas import (
    ApiResponse,
    MarginResponse,
    MarginUpdateRequest,
    RechargeApprovedResponse,
    RechargeDecisionRequest,
    RechargeRequestResponse,
    UserResponse,
)
from fastapi_paqueteria.types import RechargeStatus

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/recharge", response_model=ApiResponse[list[RechargeRequestResponse]]
)
async def list_recharges(
    status: RechargeStatus | None = None,
    admin: Any = Depends(require_admin),
    workflow: RechargeWorkflow = Depends(get_recharge_workflow),
) -> ApiResponse[list[RechargeRequestResponse]]:
    requests = await workflow.list_all(
        str(status) if status is not None else None
    )
    return ApiResponse(
        data=[RechargeRequestResponse.model_validate(r) for r in requests]
    )


@router.post(
    "/recharge/{request_id}/approve",
    response_model=ApiResponse[RechargeApprovedResponse],
)
async def approve_recharge(
    request_id: str,
    body: RechargeDecisionRequest | None = None,
    admin: Any = Depends(require_admin),
    workflow: RechargeWorkflow = Depends(get_recharge_workflow),
) -> ApiResponse[RechargeApprovedResponse]:
    request, new_balance = await workflow.approve(
        request_id, admin.id, body.notes if body else None
    )
    return ApiResponse(
        data=RechargeApprovedResponse(
            request=RechargeRequestResponse.model_validate(request),
            new_balance=new_balance,
        )
    )


@router.post(
    "/recharge/{request_id}/reject",
    response_model=ApiResponse[RechargeRequestResponse],
)
async def reject_recharge(
    request_id: str,
    body: RechargeDecisionRequest | None = None,
    admin: Any = Depends(require_admin),
    workflow: RechargeWorkflow = Depends(get_recharge_workflow),
) -> ApiResponse[RechargeRequestResponse]:
    request = await workflow.reject(
        request_id, admin.id, body.notes if body else None
    )
    return ApiResponse(data=RechargeRequestResponse.model_validate(request))


@router.get("/users", response_model=ApiResponse[list[UserResponse]])
async def list_users(
    admin: Any = Depends(require_admin),
    storage: Storage = Depends(get_storage),
) -> ApiResponse[list[UserResponse]]:
    users = await storage.list_users()
    return ApiResponse(data=[UserResponse.model_validate(u) for u in users])


@router.get("/settings/margin", response_model=ApiResponse[MarginResponse])
async def get_margin_setting(
    admin: Any = Depends(require_admin),
    margin: MarginPolicy = Depends(get_margin),
) -> ApiResponse[MarginResponse]:
    return ApiResponse(
        data=MarginResponse(value=await margin.get_percentage())
    )


@router.put("/settings/margin", response_model=ApiResponse[MarginResponse])
async def update_margin_setting(
    body: MarginUpdateRequest,
    admin: Any = Depends(require_admin),
    margin: MarginPolicy = Depends(get_margin),
) -> ApiResponse[MarginResponse]:
    value = await margin.set_percentage(body.value)
    return ApiResponse(data=MarginResponse(value=value))
