"""Temporal client factory.

Creates connections to Temporal Cloud (API key + TLS) or, when no endpoint
is configured, to a local dev server.
"""

import os
from pathlib import Path
from typing import Optional

# Load .env file if it exists
from dotenv import load_dotenv
env_path = Path(__file__).resolve().parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from temporalio.client import Client
from temporalio.service import TLSConfig

LOCAL_ENDPOINT = "localhost:7233"


def _tls_config(cert_path: Optional[str], key_path: Optional[str]) -> TLSConfig:
    if cert_path and key_path:
        return TLSConfig(
            client_cert=Path(cert_path).read_bytes(),
            client_private_key=Path(key_path).read_bytes(),
        )
    return TLSConfig()


async def get_temporal_client() -> Client:
    """Create and return a Temporal client.

    Reads configuration from environment variables:
    - TEMPORAL_ENDPOINT: Endpoint (e.g., "namespace.tmprl.cloud:7233");
      defaults to a local dev server
    - TEMPORAL_NAMESPACE: Namespace (e.g., "default")
    - TEMPORAL_API_KEY: API key for Cloud
    - TEMPORAL_CERT_PATH / TEMPORAL_KEY_PATH: mTLS client cert and key (optional)

    Returns:
        Connected Temporal client

    Raises:
        ValueError: Remote endpoint configured without an API key or certificate
    """
    endpoint = os.getenv("TEMPORAL_ENDPOINT")
    namespace = os.getenv("TEMPORAL_NAMESPACE", "default")
    api_key = os.getenv("TEMPORAL_API_KEY")
    cert_path = os.getenv("TEMPORAL_CERT_PATH")
    key_path = os.getenv("TEMPORAL_KEY_PATH")

    if not endpoint or endpoint == LOCAL_ENDPOINT:
        return await Client.connect(endpoint or LOCAL_ENDPOINT, namespace=namespace)

    if not api_key and not cert_path:
        raise ValueError(
            "TEMPORAL_API_KEY environment variable not set. "
            "Set it (or TEMPORAL_CERT_PATH/TEMPORAL_KEY_PATH) for a remote endpoint"
        )

    return await Client.connect(
        target_host=endpoint,
        namespace=namespace,
        tls=_tls_config(cert_path, key_path),
        api_key=api_key,
    )
