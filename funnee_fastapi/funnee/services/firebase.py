# funnee/services/firebase.py
from __future__ import annotations

import os
from functools import lru_cache

import firebase_admin
from firebase_admin import credentials, firestore

from ..settings import settings


def ensure_app() -> firebase_admin.App:
    """
    Initialize the default Firebase app exactly once and return it.

    Uses GOOGLE_APPLICATION_CREDENTIALS if it points at a file, ADC otherwise.
    Both the identity checks and the Firestore cart snapshots share this app.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    sa_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    options = {"projectId": settings.firebase_project_id}
    try:
        if sa_path and os.path.isfile(sa_path):
            return firebase_admin.initialize_app(credentials.Certificate(sa_path), options)
        return firebase_admin.initialize_app(options=options)
    except ValueError:
        # another request initialized between our check and this call
        return firebase_admin.get_app()


@lru_cache
def ensure_firestore() -> firestore.Client:
    """Return a Firestore client on the default app (safe to call many times)."""
    ensure_app()
    return firestore.client()
