from functools import lru_cache
from typing import Dict

from fastapi import Depends

from voiceover.config import Settings, get_settings
from voiceover.database import SessionLocal
from voiceover.lifecycle import OrderLifecycleService
from voiceover.notifications import EmailNotifier
from voiceover.providers.base import PaymentProvider
from voiceover.providers.registry import build_providers
from voiceover.storage import S3Storage


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Collaborators are built once per process from the environment
@lru_cache
def get_providers() -> Dict[str, PaymentProvider]:
    return build_providers(get_settings())


@lru_cache
def get_storage() -> S3Storage:
    settings = get_settings()
    return S3Storage(
        settings.aws_s3_bucket_name,
        region=settings.aws_region,
        download_ttl=settings.download_url_ttl,
    )


@lru_cache
def get_notifier() -> EmailNotifier:
    return EmailNotifier(get_settings())


def get_lifecycle_service(
    db=Depends(get_db),
    providers: Dict[str, PaymentProvider] = Depends(get_providers),
    storage: S3Storage = Depends(get_storage),
    notifier: EmailNotifier = Depends(get_notifier),
    settings: Settings = Depends(get_settings),
) -> OrderLifecycleService:
    return OrderLifecycleService(db, providers, storage, notifier, settings)
