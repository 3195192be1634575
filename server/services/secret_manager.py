import logging
import os
from typing import Optional

from google.cloud import secretmanager

logger = logging.getLogger(__name__)


def get_secret_value(secret_name: str, project_id: Optional[str] = None) -> str:
    if not secret_name:
        raise ValueError("secret_name is required")
    project = project_id or os.getenv("GOOGLE_CLOUD_PROJECT")
    if not project:
        raise RuntimeError("GOOGLE_CLOUD_PROJECT not set")

    client = secretmanager.SecretManagerServiceClient()
    secret_path = f"projects/{project}/secrets/{secret_name}/versions/latest"
    response = client.access_secret_version(request={"name": secret_path})
    return response.payload.data.decode("utf-8")


def resolve_secret(env_var: str, secret_name: Optional[str] = None) -> Optional[str]:
    """
    Look up a credential in the environment first, then in Secret Manager.

    Returns None when neither source has it; Secret Manager errors are
    logged and treated as "not configured".
    """
    value = os.getenv(env_var)
    if value:
        return value
    if not secret_name:
        return None
    try:
        return get_secret_value(secret_name)
    except Exception as exc:
        logger.warning("Secret %s not available from Secret Manager: %s", secret_name, exc)
        return None
