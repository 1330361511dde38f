"""
Payment provider webhooks (Stripe).

Register https://<backend>/webhooks/payment for checkout.session.completed and
charge.refunded, in both live and test mode.
"""
from fastapi import APIRouter, Depends, Request

from app.dependencies.services import get_webhook_pipeline
from app.services.webhook_pipeline import WebhookPipeline

router = APIRouter()


@router.post("/payment")
async def payment_webhook(request: Request, pipeline: WebhookPipeline = Depends(get_webhook_pipeline)):
    payload = await request.body()
    return pipeline.process(payload, request.headers.get("stripe-signature"))
