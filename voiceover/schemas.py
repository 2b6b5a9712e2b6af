from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Requests

class UploadRequest(CamelModel):
    file_name: str
    file_type: str


class CreateOrderRequest(CamelModel):
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    amount: int
    duration: int
    script: Optional[str] = None
    video_key: str
    payment_method: str


class CreatePaymentLinkRequest(CamelModel):
    order_id: int
    payment_method: str
    amount: Optional[int] = None
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None


class CaptureRequest(CamelModel):
    payment_id: str
    payment_method: str


class CompleteOrderRequest(CamelModel):
    final_video_key: str


class UpdateStatusRequest(CamelModel):
    status: str


class TokenRequest(BaseModel):
    email: str
    password: str


# Responses

class UploadResponse(CamelModel):
    upload_url: str
    key: str


class QuoteResponse(CamelModel):
    duration: int
    price: int
    currency: str


class OrderCreatedResponse(CamelModel):
    order_id: int
    status: str


class PaymentLinkResponse(CamelModel):
    payment_url: Optional[str]
    payment_id: str
    order_id: int
    reused: bool = False


class PaymentStatusResponse(CamelModel):
    status: str
    payment_id: str
    payment_method: str
    amount: Optional[int] = None
    currency: Optional[str] = None


class WebhookResponse(CamelModel):
    received: bool = True
    order_id: Optional[int] = None
    status: Optional[str] = None
    transitioned: bool = False


class UserSummary(CamelModel):
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None


class OrderResponse(CamelModel):
    id: int
    status: str
    price: int
    duration: int
    script: Optional[str] = None
    original_video_key: str
    final_video_key: Optional[str] = None
    payment_method: str
    payment_intent_id: Optional[str] = None
    payment_status: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: UserSummary
    video_url: Optional[str] = None
    final_video_url: Optional[str] = None


class OrderListResponse(CamelModel):
    orders: List[OrderResponse]
    total: int
    limit: int
    offset: int


class CompleteOrderResponse(CamelModel):
    order_id: int
    status: str
    notification_sent: bool


class StatusUpdateResponse(CamelModel):
    order_id: int
    status: str


class DeleteOrderResponse(CamelModel):
    message: str
    order_id: int


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


def order_response(order, video_url: Optional[str] = None,
                   final_video_url: Optional[str] = None) -> OrderResponse:
    response = OrderResponse.model_validate(order)
    return response.model_copy(update={"video_url": video_url, "final_video_url": final_video_url})
