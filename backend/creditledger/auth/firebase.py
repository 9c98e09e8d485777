"""
Firebase Admin SDK initialization and ID token verification.
"""
import json
import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import auth, credentials

from creditledger.config import settings

logger = logging.getLogger(__name__)

_firebase_app: Optional[firebase_admin.App] = None


def _load_credentials():
    """
    FIREBASE_CREDENTIALS_JSON may be a file path or the JSON document itself.
    Without it, application default credentials are used (local gcloud).
    """
    raw = settings.firebase_credentials_json
    if not raw:
        return credentials.ApplicationDefault()

    if os.path.exists(raw):
        logger.info(f"Loaded Firebase credentials from file: {raw}")
        return credentials.Certificate(raw)

    try:
        cred = credentials.Certificate(json.loads(raw))
    except json.JSONDecodeError:
        raise ValueError("FIREBASE_CREDENTIALS_JSON must be a valid file path or JSON string")
    logger.info("Loaded Firebase credentials from JSON string")
    return cred


def initialize_firebase() -> None:
    """Initialize the Firebase Admin SDK once per process."""
    global _firebase_app

    if _firebase_app is not None:
        return

    if not settings.firebase_project_id:
        raise ValueError("FIREBASE_PROJECT_ID must be set")

    _firebase_app = firebase_admin.initialize_app(
        _load_credentials(),
        {"projectId": settings.firebase_project_id}
    )


def verify_firebase_token(token: str) -> dict:
    """
    Verify a Firebase ID token and return its claims.

    Raises:
        ValueError: If token is invalid, expired, or revoked
    """
    if _firebase_app is None:
        raise RuntimeError("Firebase Admin SDK not initialized. Call initialize_firebase() first.")

    try:
        return auth.verify_id_token(token)
    except ValueError:
        raise
    except Exception as e:
        raise ValueError(f"Token verification failed: {str(e)}")
