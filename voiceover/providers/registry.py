import logging
from typing import Dict

from voiceover.config import Settings
from voiceover.providers.base import PaymentProvider
from voiceover.providers.paypal import PayPalProvider
from voiceover.providers.square import SquareProvider
from voiceover.providers.stripe_provider import StripeProvider

logger = logging.getLogger(__name__)


def build_providers(settings: Settings) -> Dict[str, PaymentProvider]:
    """Instantiate every provider whose credentials are configured."""
    providers: Dict[str, PaymentProvider] = {}

    if settings.stripe_secret_key:
        providers["stripe"] = StripeProvider(settings.stripe_secret_key)

    if settings.square_access_token and settings.square_location_id:
        providers["square"] = SquareProvider(
            settings.square_access_token,
            settings.square_location_id,
            environment=settings.square_environment,
            notification_url=settings.square_webhook_url,
            timeout=settings.provider_timeout,
        )

    if settings.paypal_client_id and settings.paypal_secret_key:
        providers["paypal"] = PayPalProvider(
            settings.paypal_client_id,
            settings.paypal_secret_key,
            api_url=settings.paypal_api_url,
            timeout=settings.provider_timeout,
        )

    if providers:
        logger.info(f"Payment providers enabled: {', '.join(sorted(providers))}")
    else:
        logger.warning("No payment providers are configured; payment links will be rejected")
    return providers
