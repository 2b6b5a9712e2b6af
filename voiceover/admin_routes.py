from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from voiceover.auth import authenticate_admin, require_admin
from voiceover.config import Settings, get_settings
from voiceover.dependencies import get_db, get_lifecycle_service
from voiceover.lifecycle import OrderLifecycleService
from voiceover.schemas import (
    CompleteOrderRequest,
    CompleteOrderResponse,
    DeleteOrderResponse,
    OrderListResponse,
    StatusUpdateResponse,
    TokenRequest,
    TokenResponse,
    UpdateStatusRequest,
    order_response,
)

admin_router = APIRouter()


@admin_router.post("/token", response_model=TokenResponse)
def generate_token(
    request: TokenRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return TokenResponse(access_token=authenticate_admin(db, request.email, request.password, settings))


@admin_router.get("/orders", response_model=OrderListResponse, dependencies=[Depends(require_admin)])
def list_orders(
    status: Optional[str] = None,
    limit: int = Query(50),
    offset: int = Query(0),
    service: OrderLifecycleService = Depends(get_lifecycle_service),
):
    page = service.list_orders(status=status or None, limit=limit, offset=offset)
    return OrderListResponse(
        orders=[order_response(item.order, item.video_url, item.final_video_url) for item in page.orders],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@admin_router.post(
    "/orders/{order_id}/complete",
    response_model=CompleteOrderResponse,
    dependencies=[Depends(require_admin)],
)
def complete_order(
    order_id: int,
    request: CompleteOrderRequest,
    service: OrderLifecycleService = Depends(get_lifecycle_service),
):
    order, notified = service.admin_complete_order(order_id, request.final_video_key)
    return CompleteOrderResponse(order_id=order.id, status=order.status, notification_sent=notified)


@admin_router.put(
    "/orders/{order_id}/status",
    response_model=StatusUpdateResponse,
    dependencies=[Depends(require_admin)],
)
def update_order_status(
    order_id: int,
    request: UpdateStatusRequest,
    service: OrderLifecycleService = Depends(get_lifecycle_service),
):
    order = service.admin_update_status(order_id, request.status)
    return StatusUpdateResponse(order_id=order.id, status=order.status)


@admin_router.delete(
    "/orders/{order_id}",
    response_model=DeleteOrderResponse,
    dependencies=[Depends(require_admin)],
)
def delete_order(order_id: int, service: OrderLifecycleService = Depends(get_lifecycle_service)):
    service.admin_delete_order(order_id)
    return DeleteOrderResponse(message="Order deleted successfully", order_id=order_id)
