from __future__ import annotations

import base64
import logging
import os
import pathlib
import tempfile
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import auth, credentials, firestore
from google.cloud.firestore import Client as FirestoreClient

from app.config import FirebaseConfig

log = logging.getLogger("veo-service")


def _ensure_credentials_from_b64() -> None:
    """Write credentials from ``GCP_KEY_B64`` to disk if present."""

    key_b64 = os.getenv("GCP_KEY_B64")
    if not key_b64 or os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
        return

    out_path = os.getenv("GCP_KEY_PATH") or os.path.join(tempfile.gettempdir(), "gcp-key.json")
    try:
        pathlib.Path(out_path).write_bytes(base64.b64decode(key_b64))
        os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = out_path
        log.info("[creds] wrote service account key to %s from GCP_KEY_B64", out_path)
    except Exception as exc:  # pragma: no cover - diagnostics only
        log.exception("[creds] failed to write key from GCP_KEY_B64: %s", exc)


def initialize_firebase(config: FirebaseConfig) -> None:
    """Initialise the Firebase Admin SDK once per process."""

    if firebase_admin._apps:
        return

    _ensure_credentials_from_b64()
    options: Dict[str, Any] = {}
    if config.project_id:
        options["projectId"] = config.project_id

    if config.service_account_json_path:
        cred = credentials.Certificate(config.service_account_json_path)
        firebase_admin.initialize_app(cred, options)
    else:
        firebase_admin.initialize_app(options=options or None)
    log.info("firebase.init", extra={"project": config.project_id})


def get_firestore_client(config: FirebaseConfig) -> FirestoreClient:
    initialize_firebase(config)
    return firestore.client()


def verify_id_token(config: FirebaseConfig, id_token: str) -> Optional[Dict[str, Any]]:
    """Return decoded claims, or ``None`` when the token is invalid."""

    initialize_firebase(config)
    try:
        return auth.verify_id_token(id_token)
    except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError, ValueError) as exc:
        log.warning("[auth] token verification failed: %s", exc)
        return None


__all__ = ["get_firestore_client", "initialize_firebase", "verify_id_token"]
