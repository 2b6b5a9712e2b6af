from fastapi import APIRouter, Depends, Query, status

from voiceover.config import Settings, get_settings
from voiceover.dependencies import get_lifecycle_service, get_storage
from voiceover.errors import ValidationError
from voiceover.lifecycle import CustomerInfo, OrderLifecycleService
from voiceover.pricing import calculate_price
from voiceover.schemas import (
    CaptureRequest,
    CreateOrderRequest,
    CreatePaymentLinkRequest,
    OrderCreatedResponse,
    OrderResponse,
    PaymentLinkResponse,
    PaymentStatusResponse,
    QuoteResponse,
    UploadRequest,
    UploadResponse,
    order_response,
)
from voiceover.storage import S3Storage

router = APIRouter()


@router.post("/uploads/initiate", response_model=UploadResponse)
def initiate_upload(request: UploadRequest, storage: S3Storage = Depends(get_storage)):
    upload = storage.generate_upload_url(request.file_name, request.file_type)
    return UploadResponse(upload_url=upload["upload_url"], key=upload["key"])


@router.get("/orders/quote", response_model=QuoteResponse)
def quote(duration: int = Query(..., ge=1), settings: Settings = Depends(get_settings)):
    return QuoteResponse(duration=duration, price=calculate_price(duration), currency=settings.currency)


@router.post("/orders", response_model=OrderCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_order(request: CreateOrderRequest, service: OrderLifecycleService = Depends(get_lifecycle_service)):
    order = service.create_order(
        CustomerInfo(request.first_name, request.last_name, request.email, request.phone),
        video_key=request.video_key,
        amount=request.amount,
        duration=request.duration,
        payment_method=request.payment_method,
        script=request.script,
    )
    return OrderCreatedResponse(order_id=order.id, status=order.status)


@router.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, service: OrderLifecycleService = Depends(get_lifecycle_service)):
    return order_response(service.get_order(order_id))


@router.post("/payments/create-link", response_model=PaymentLinkResponse)
def create_payment_link(
    request: CreatePaymentLinkRequest,
    service: OrderLifecycleService = Depends(get_lifecycle_service),
):
    link = service.create_payment_link(
        request.order_id,
        request.payment_method,
        amount=request.amount,
        return_url=request.return_url,
        cancel_url=request.cancel_url,
    )
    return PaymentLinkResponse(
        payment_url=link.redirect_url,
        payment_id=link.provider_session_id,
        order_id=link.order_id,
        reused=link.reused,
    )


@router.post("/payments/capture", response_model=OrderResponse)
def capture_payment(request: CaptureRequest, service: OrderLifecycleService = Depends(get_lifecycle_service)):
    return order_response(service.capture_provider_payment(request.payment_id, request.payment_method))


@router.get("/payments/status/{payment_id}/{payment_method}", response_model=PaymentStatusResponse)
def payment_status(
    payment_id: str,
    payment_method: str,
    service: OrderLifecycleService = Depends(get_lifecycle_service),
):
    if not payment_id.strip():
        raise ValidationError("paymentId is required")
    result = service.get_payment_status(payment_id, payment_method)
    return PaymentStatusResponse(
        status=result.status,
        payment_id=payment_id,
        payment_method=payment_method,
        amount=result.amount,
        currency=result.currency,
    )
