import logging

import firebase_admin
from firebase_admin import credentials, firestore
from google.auth.credentials import AnonymousCredentials
from google.cloud.firestore import Client as FirestoreClient

from slidejobs.config import Settings

logger = logging.getLogger(__name__)


def initialize_firebase(settings: Settings) -> None:
  """Initializes the Firebase Admin SDK."""
  if firebase_admin._apps:
    return

  if not settings.gcp_project_id:
    logger.warning("GOOGLE_CLOUD_PROJECT not set. Firebase Admin SDK not initialized.")
    return

  if settings.firebase_service_account_json_path:
    cred = credentials.Certificate(settings.firebase_service_account_json_path)
    firebase_admin.initialize_app(cred, {"projectId": settings.gcp_project_id})
  else:
    # Use default credentials (e.g. Google Application Default Credentials)
    firebase_admin.initialize_app(options={"projectId": settings.gcp_project_id})
  logger.info("Firebase Admin SDK initialized for project %s.", settings.gcp_project_id)


def get_firestore_client(settings: Settings) -> FirestoreClient:
  """Return a Firestore client, talking to the emulator when one is configured."""
  if settings.firestore_emulator_host:
    # The SDK reads FIRESTORE_EMULATOR_HOST itself; the emulator needs no credentials.
    logger.info("Using Firestore emulator at %s", settings.firestore_emulator_host)
    return FirestoreClient(project=settings.gcp_project_id, credentials=AnonymousCredentials())

  initialize_firebase(settings)
  logger.info("Connecting to live Firestore")
  return firestore.client()
