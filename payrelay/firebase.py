"""Firebase Admin bootstrap: credentials from a service-account file or env vars."""

import logging
import os

import firebase_admin
from firebase_admin import credentials, firestore_async
from google.cloud.firestore import AsyncClient

from payrelay.config import Settings

logger = logging.getLogger(__name__)


def load_credentials(settings: Settings) -> credentials.Certificate:
    """Prefer the service-account file; fall back to FIREBASE_* env vars."""
    path = settings.firebase_service_account_file
    if path and os.path.isfile(path):
        logger.info("Loading Firebase credentials from %s", path)
        return credentials.Certificate(path)

    logger.info("No %s found, using env vars", path or "service-account file")
    return credentials.Certificate(settings.firebase_credentials_info())


def init_firebase_app(settings: Settings) -> firebase_admin.App:
    """Return the default Firebase app, initialising it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        return firebase_admin.initialize_app(load_credentials(settings))


def get_firestore_client(settings: Settings) -> AsyncClient:
    return firestore_async.client(init_firebase_app(settings))
