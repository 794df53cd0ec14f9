import os
import firebase_admin
from firebase_admin import credentials, auth
from app.core.config import settings
import logging
import google.auth
from google.auth.transport.requests import Request
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

FCM_SCOPES = ['https://www.googleapis.com/auth/firebase.messaging']


def _has_credentials_file() -> bool:
    return bool(settings.firebase_credentials_path) and os.path.exists(settings.firebase_credentials_path)


def init_firebase():
    """
    Initialize the Firebase Admin SDK once per process.

    Uses the service account file when it exists, otherwise the application
    default credentials of the runtime (Cloud Run, GKE).
    """
    logger.info("init_firebase: Entry")

    if firebase_admin._apps:
        logger.info("init_firebase: Already initialized")
        return

    try:
        if _has_credentials_file():
            cred = credentials.Certificate(settings.firebase_credentials_path)
        else:
            logger.warning("init_firebase: No credentials file, using application default credentials")
            cred = credentials.ApplicationDefault()
        firebase_admin.initialize_app(cred, {'projectId': settings.firebase_project_id})
        logger.info(f"init_firebase: Success - project: {settings.firebase_project_id}")
    except Exception as e:
        logger.error(f"init_firebase: Failure - {e}")
        raise


def verify_firebase_token(token: str) -> dict:
    """Check a Firebase ID token sent by the app; returns its claims (uid, email, ...)"""
    decoded_token = auth.verify_id_token(token)
    logger.info(f"verify_firebase_token: Success - {decoded_token.get('uid')}")
    return decoded_token


def get_fcm_access_token() -> str:
    """OAuth2 bearer token for the FCM HTTP v1 send endpoint"""
    logger.info("get_fcm_access_token: Entry")

    try:
        if _has_credentials_file():
            creds = service_account.Credentials.from_service_account_file(
                settings.firebase_credentials_path,
                scopes=FCM_SCOPES
            )
        else:
            creds, _ = google.auth.default(scopes=FCM_SCOPES)
        creds.refresh(Request())
    except Exception as e:
        logger.error(f"get_fcm_access_token: Failure - {e}")
        raise

    logger.info("get_fcm_access_token: Success")
    return creds.token
