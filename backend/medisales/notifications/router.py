"""Notification trigger API endpoints.

The inventory and sales subsystems call these endpoints after a committed
change. Each one fans the event out over ``/ws/notifications`` and reports
how many live connections were reached. Zero is a normal answer: nobody
in the target audience is connected right now.

Endpoints:
    POST /api/notifications/notification:         Generic notice -> everyone
    POST /api/notifications/sales:                Sale recorded -> Admins
    POST /api/notifications/stock:                Stock level changed -> everyone
    POST /api/notifications/low-stock:            Below threshold -> Admins
    POST /api/notifications/stock-alert:          Typed stock alert -> Admins
    POST /api/notifications/transaction-complete: Checkout done -> everyone
    POST /api/notifications/new-message:          Message notice -> one user
    POST /api/notifications/dashboard:            Dashboard data -> Admins
    POST /api/notifications/expiration:           Product expiring -> Admins
"""
from datetime import date
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from medisales.dependencies import get_notification_hub
from medisales.realtime.hub import NotificationHub

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


# =============================================================================
# Request/Response Models
# =============================================================================


class DeliveryResult(BaseModel):
    delivered: int = Field(..., description="Live connections the event was sent to")


class NotificationRequest(BaseModel):
    message: str = Field(..., min_length=1)
    type: str = Field(default="info")


class SalesUpdateRequest(BaseModel):
    amount: float
    transaction_code: str = Field(..., min_length=1)


class StockUpdateRequest(BaseModel):
    product_id: int
    product_name: str = Field(..., min_length=1)
    new_stock: int


class LowStockRequest(BaseModel):
    product_id: int
    product_name: str = Field(..., min_length=1)
    current_stock: int
    threshold: int


class StockAlertRequest(BaseModel):
    product_name: str = Field(..., min_length=1)
    current_stock: int
    alert_type: str = Field(..., min_length=1, description="e.g. LowStock, OutOfStock")


class TransactionCompleteRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1)
    amount: float


class NewMessageRequest(BaseModel):
    to_user_id: int = Field(..., gt=0)
    from_user_id: int = Field(..., gt=0)
    from_user_name: str
    preview: str


class DashboardRequest(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)


class ExpirationRequest(BaseModel):
    product_id: int
    product_name: str = Field(..., min_length=1)
    expiry_date: date
    days_until_expiry: int


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/notification", response_model=DeliveryResult)
async def send_notification(
    body: NotificationRequest, hub: NotificationHub = Depends(get_notification_hub)
) -> DeliveryResult:
    return DeliveryResult(delivered=await hub.send_notification(body.message, body.type))


@router.post("/sales", response_model=DeliveryResult)
async def broadcast_sales_update(
    body: SalesUpdateRequest, hub: NotificationHub = Depends(get_notification_hub)
) -> DeliveryResult:
    return DeliveryResult(
        delivered=await hub.broadcast_sales_update(body.amount, body.transaction_code)
    )


@router.post("/stock", response_model=DeliveryResult)
async def broadcast_stock_update(
    body: StockUpdateRequest, hub: NotificationHub = Depends(get_notification_hub)
) -> DeliveryResult:
    return DeliveryResult(delivered=await hub.broadcast_stock_update(
        body.product_id, body.product_name, body.new_stock
    ))


@router.post("/low-stock", response_model=DeliveryResult)
async def send_low_stock_alert(
    body: LowStockRequest, hub: NotificationHub = Depends(get_notification_hub)
) -> DeliveryResult:
    return DeliveryResult(delivered=await hub.send_low_stock_alert(
        body.product_id, body.product_name, body.current_stock, body.threshold
    ))


@router.post("/stock-alert", response_model=DeliveryResult)
async def send_stock_alert(
    body: StockAlertRequest, hub: NotificationHub = Depends(get_notification_hub)
) -> DeliveryResult:
    return DeliveryResult(delivered=await hub.send_stock_alert(
        body.product_name, body.current_stock, body.alert_type
    ))


@router.post("/transaction-complete", response_model=DeliveryResult)
async def send_transaction_complete(
    body: TransactionCompleteRequest, hub: NotificationHub = Depends(get_notification_hub)
) -> DeliveryResult:
    return DeliveryResult(
        delivered=await hub.send_transaction_complete(body.transaction_id, body.amount)
    )


@router.post("/new-message", response_model=DeliveryResult)
async def send_new_message(
    body: NewMessageRequest, hub: NotificationHub = Depends(get_notification_hub)
) -> DeliveryResult:
    return DeliveryResult(delivered=await hub.send_new_message(
        body.to_user_id, body.from_user_id, body.from_user_name, body.preview
    ))


@router.post("/dashboard", response_model=DeliveryResult)
async def broadcast_dashboard_update(
    body: DashboardRequest, hub: NotificationHub = Depends(get_notification_hub)
) -> DeliveryResult:
    return DeliveryResult(delivered=await hub.broadcast_dashboard_update(body.data))


@router.post("/expiration", response_model=DeliveryResult)
async def send_expiration_alert(
    body: ExpirationRequest, hub: NotificationHub = Depends(get_notification_hub)
) -> DeliveryResult:
    return DeliveryResult(delivered=await hub.send_expiration_alert(
        body.product_id, body.product_name, body.expiry_date, body.days_until_expiry
    ))
