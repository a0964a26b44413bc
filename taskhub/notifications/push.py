"""Push delivery through Firebase Cloud Messaging."""
from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, messaging
from loguru import logger

from taskhub.settings import settings

_app: Optional[firebase_admin.App] = None


def get_firebase_app() -> Optional[firebase_admin.App]:
    """Initialise the Firebase app once. Returns None when push is not configured."""
    global _app
    if _app is not None:
        return _app
    if settings.firebase_credentials_file is None:
        return None
    _app = firebase_admin.initialize_app(
        credentials.Certificate(str(settings.firebase_credentials_file)),
        name="taskhub",
    )
    logger.info("Firebase initialised for push notifications")
    return _app


def _is_stale_token_error(exc: Optional[Exception]) -> bool:
    return isinstance(
        exc, (messaging.UnregisteredError, messaging.SenderIdMismatchError)
    ) or getattr(exc, "code", None) == "INVALID_ARGUMENT"


def _send(tokens: List[str], title: str, body: str, data: Dict[str, str]) -> List[str]:
    app = get_firebase_app()
    if app is None:
        return []
    message = messaging.MulticastMessage(
        tokens=tokens,
        notification=messaging.Notification(title=title, body=body),
        data=data,
    )
    response = messaging.send_each_for_multicast(message, app=app)
    stale = [
        token
        for token, result in zip(tokens, response.responses)
        if not result.success and _is_stale_token_error(result.exception)
    ]
    logger.debug(
        "Push sent: {} delivered, {} failed", response.success_count, response.failure_count
    )
    return stale


async def send_push(
    tokens: List[str], title: str, body: str, data: Optional[Dict[str, str]] = None
) -> List[str]:
    """
    Send one notification to every device token.

    Returns the tokens Firebase rejected as no longer valid, so the caller can
    forget them.
    """
    if not tokens:
        return []
    return await asyncio.to_thread(_send, tokens, title, body, data or {})
