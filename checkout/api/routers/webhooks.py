# checkout/api/routers/webhooks.py
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from checkout.api.dependencies import get_event_ledger, get_payment_processor, get_product_client
from checkout.data.database import get_db
from checkout.domain.errors import CatalogError, InvalidSignatureError, PaymentProcessorError
from checkout.domain.schemas import WebhookAck
from checkout.gateway.port import PaymentProcessor
from checkout.services.event_ledger import WebhookEventLedger
from checkout.services.product_client import ProductClient
from checkout.services.reconciliation_service import ReconciliationService
from checkout.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_service(db: Session, product_client: ProductClient, processor: PaymentProcessor):
    return ReconciliationService(db=db, processor=processor, product_client=product_client)


@router.post("/payments", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
    processor: PaymentProcessor = Depends(get_payment_processor),
    ledger: WebhookEventLedger = Depends(get_event_ledger),
):
    """
    Webhook procesora platnosci.
    Podpis liczony z surowego body - dlatego czytamy bytes, nie model.
    2xx = przyjete (rowniez duplikaty), 400 = zly podpis, 503 = procesor niedostepny.
    """
    payload = await request.body()

    try:
        event = processor.construct_event(payload, stripe_signature)
    except InvalidSignatureError as e:
        logger.warning(f"Rejected webhook: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    if await run_in_threadpool(ledger.seen, event.event_id):
        logger.info(f"Webhook event {event.event_id} already processed, skipping")
        return {"received": True, "duplicate": True}

    svc = get_service(db, product_client, processor)
    try:
        outcome = await run_in_threadpool(svc.handle_event, event)
    except (PaymentProcessorError, CatalogError) as e:
        # procesor doreczy ponownie
        logger.error(f"Webhook event {event.event_id} failed transiently: {e}")
        raise HTTPException(status_code=503, detail="Temporarily unable to process event")

    await run_in_threadpool(ledger.mark_processed, event.event_id, outcome)
    logger.info(f"Webhook event {event.event_id} ({event.type}) processed: {outcome}")
    return {"received": True, "outcome": outcome}
