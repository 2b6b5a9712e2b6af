import logging

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from voiceover.admin_routes import admin_router
from voiceover.config import get_settings
from voiceover.database import Base, engine
from voiceover.dependencies import get_lifecycle_service
from voiceover.errors import OrderServiceError, ProviderError
from voiceover.lifecycle import OrderLifecycleService
from voiceover.routes import router
from voiceover.schemas import WebhookResponse

settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Voiceover Order Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router, prefix="/admin")

Base.metadata.create_all(bind=engine)


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    if isinstance(exc, ProviderError):
        logger.error(f"{request.method} {request.url.path} failed ({exc.category}): {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Missing or invalid fields", "details": jsonable_encoder(exc.errors())},
    )


@app.get("/", tags=["root"])
def root():
    return {"message": "success"}


@app.post("/webhooks/{provider}", response_model=WebhookResponse)
async def payment_webhook(
    provider: str,
    request: Request,
    service: OrderLifecycleService = Depends(get_lifecycle_service),
):
    # Raw bytes are needed as-is for the signature check
    payload = await request.body()
    ack = service.handle_payment_webhook(payload, request.headers, provider)
    return WebhookResponse(
        received=ack.received,
        order_id=ack.order_id,
        status=ack.status,
        transitioned=ack.transitioned,
    )
