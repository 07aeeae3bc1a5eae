"""
WhatsApp Webhook Router

Handles incoming webhooks from Twilio's WhatsApp channel:
- POST /webhook - Message reception endpoint, replies with TwiML

Senders outside the allow-list and malformed deliveries get an empty
``<Response/>`` with HTTP 200 so Twilio does not retry.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from ..context import AppContext, get_context
from ..exceptions import MalformedWebhookError
from ..services.whatsapp.client import (
    build_twiml,
    empty_twiml,
    parse_webhook_form,
    verify_signature,
)

logger = logging.getLogger(__name__)
router = APIRouter()

TWIML_MEDIA_TYPE = "text/xml"


def _twiml(body: str, status_code: int = 200) -> Response:
    return Response(content=body, media_type=TWIML_MEDIA_TYPE, status_code=status_code)


@router.post("/webhook")
async def receive_webhook(request: Request, ctx: AppContext = Depends(get_context)):
    """
    Webhook endpoint for receiving WhatsApp messages.

    Processes the delivery through the conversation controller and returns
    its replies as TwiML.
    """
    form = await request.form()
    params = {key: value for key, value in form.items() if isinstance(value, str)}

    if ctx.settings.validate_signature:
        # Twilio signs the public URL it posted to, not the one behind the proxy
        url = f"{ctx.settings.public_base_url}{request.url.path}"
        signature = request.headers.get("X-Twilio-Signature")
        if not verify_signature(ctx.settings.twilio_auth_token, url, params, signature):
            logger.warning("Invalid webhook signature")
            return Response(status_code=403)

    try:
        message = parse_webhook_form(params)
    except MalformedWebhookError as e:
        logger.error(f"Malformed webhook payload: {e}")
        return _twiml(empty_twiml())

    logger.info(f"Webhook received: {len(message.media)} attachments, {len(message.body)} chars")
    replies = await ctx.controller.handle(message)
    return _twiml(build_twiml(replies))
