# services/factory.py
"""
Builds the delivery services enabled by the current settings
"""

import logging
import time
from typing import Callable, Dict, Optional

import httpx

from config.settings import IntakeSettings
from core.dispatcher import DeliveryService
from services.notifier import ResendNotifier
from services.record_store import AirtableRecordStore

logger = logging.getLogger(__name__)


def build_delivery_services(settings: IntakeSettings,
                            transport: Optional[httpx.BaseTransport] = None,
                            sleep: Callable[[float], None] = time.sleep) -> Dict[str, DeliveryService]:
    """
    Instantiate an adapter for every service with complete credentials

    Returns:
        Mapping of response key -> adapter, record store first
    """
    services: Dict[str, DeliveryService] = {}

    if settings.record_store_configured:
        store = AirtableRecordStore(
            api_key=settings.airtable_api_key,
            base_id=settings.airtable_base_id,
            table_name=settings.airtable_table_name,
            base_url=settings.airtable_base_url,
            timeout=settings.http_timeout_seconds,
            max_attempts=settings.max_attempts,
            retry_base_delay=settings.retry_base_delay_seconds,
            transport=transport,
            sleep=sleep,
        )
        services[store.name] = store
    else:
        logger.info("Record store not configured (AIRTABLE_API_KEY / AIRTABLE_BASE_ID missing)")

    if settings.notifier_configured:
        notifier = ResendNotifier(
            api_key=settings.resend_api_key,
            from_email=settings.resend_from_email,
            to_email=settings.resend_to_email,
            subject=settings.notification_subject,
            base_url=settings.resend_base_url,
            timeout=settings.http_timeout_seconds,
            max_attempts=settings.max_attempts,
            retry_base_delay=settings.retry_base_delay_seconds,
            transport=transport,
            sleep=sleep,
        )
        services[notifier.name] = notifier
    else:
        logger.info("Notifier not configured (RESEND_API_KEY / RESEND_FROM_EMAIL / RESEND_TO_EMAIL missing)")

    if not services:
        logger.warning("No delivery services configured; submissions will be accepted but not delivered")

    return services
