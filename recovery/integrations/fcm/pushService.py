"""
Firebase Cloud Messaging (FCM) Topic Push
=========================================

Sends staff alerts to an FCM topic that the staff mobile app subscribes to.

Initialization:
  The Firebase Admin SDK is initialised lazily on first send from one of:
    - ``firebase_service_account_path``  -- path to a JSON service account file
    - ``firebase_credentials_json``      -- raw JSON string of the service account
  When neither is set, ``is_configured`` returns False and callers skip push.

Retry logic:
  Transient failures (unavailable, deadline exceeded, 5xx) are retried up to
  ``MAX_RETRIES`` times with exponential backoff.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import UnavailableError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

MAX_RETRIES: int = 3
RETRY_BASE_DELAY_SECONDS: float = 0.5
ANDROID_CHANNEL_ID = "staff_alerts"


@dataclass
class SendResult:
    """Result of sending a single notification."""
    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class FirebaseCredentials:
    service_account_path: str = ""
    credentials_json: str = ""


# ---------------------------------------------------------------------------
# Firebase Admin SDK initialisation (lazy singleton)
# ---------------------------------------------------------------------------

_firebase_app: firebase_admin.App | None = None


def is_configured(creds: FirebaseCredentials) -> bool:
    return bool(creds.service_account_path or creds.credentials_json)


def _ensure_firebase_initialised(creds: FirebaseCredentials) -> firebase_admin.App:
    """Initialise the Firebase Admin SDK if it has not been already.

    Raises:
        RuntimeError: If no credentials are configured.
    """
    global _firebase_app

    if _firebase_app is not None:
        return _firebase_app

    try:
        _firebase_app = firebase_admin.get_app()
        logger.info("Using existing Firebase Admin app")
        return _firebase_app
    except ValueError:
        pass  # no default app yet

    if creds.service_account_path:
        logger.info(
            "Initialising Firebase Admin SDK from service account file: %s",
            creds.service_account_path,
        )
        cert = credentials.Certificate(creds.service_account_path)
    elif creds.credentials_json:
        logger.info("Initialising Firebase Admin SDK from JSON setting")
        cert = credentials.Certificate(json.loads(creds.credentials_json))
    else:
        raise RuntimeError(
            "Firebase credentials not configured. Set either "
            "FIREBASE_SERVICE_ACCOUNT_PATH or FIREBASE_CREDENTIALS_JSON."
        )

    _firebase_app = firebase_admin.initialize_app(cert)
    logger.info("Firebase Admin SDK initialised successfully")
    return _firebase_app


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _is_transient_error(exc: Exception) -> bool:
    if isinstance(exc, UnavailableError):
        return True
    error_str = str(exc).lower()
    return any(
        indicator in error_str
        for indicator in ("unavailable", "deadline exceeded", "timeout", "503", "500")
    )


def _build_topic_message(
    topic: str,
    title: str,
    body: str,
    data: dict[str, str] | None = None,
) -> messaging.Message:
    """Build a high-priority topic message with APNS/Android config."""
    str_data = {k: str(v) for k, v in data.items()} if data else None

    return messaging.Message(
        topic=topic,
        notification=messaging.Notification(title=title, body=body),
        data=str_data,
        apns=messaging.APNSConfig(
            headers={"apns-priority": "10"},
            payload=messaging.APNSPayload(aps=messaging.Aps(sound="default")),
        ),
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(
                sound="default",
                channel_id=ANDROID_CHANNEL_ID,
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def send_to_topic(
    creds: FirebaseCredentials,
    topic: str,
    title: str,
    body: str,
    data: dict[str, str] | None = None,
) -> SendResult:
    """Send a push notification to all devices subscribed to ``topic``.

    The blocking Firebase call runs in a worker thread.
    """
    _ensure_firebase_initialised(creds)
    msg = _build_topic_message(topic, title, body, data)

    logger.info("Sending topic notification: topic=%r, title=%r", topic, title)

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            message_id: str = await asyncio.to_thread(messaging.send, msg)
            return SendResult(success=True, message_id=message_id)
        except Exception as exc:
            if _is_transient_error(exc) and attempt < MAX_RETRIES:
                delay = RETRY_BASE_DELAY_SECONDS * (2 ** (attempt - 1))
                logger.warning(
                    "Transient FCM error (attempt %d/%d), retrying in %.1fs: %s",
                    attempt,
                    MAX_RETRIES,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)
                continue

            logger.error("FCM topic send failed after %d attempts: %s", attempt, exc)
            return SendResult(success=False, error=str(exc))

    return SendResult(success=False, error=f"Failed after {MAX_RETRIES} attempts")
