"""Elasticsearch client construction shared by the index adapters.

TLS with custom CA certificates for production deployments; plain
HTTP endpoints are passed through without an SSL context.
"""

from __future__ import annotations

import ssl
from typing import Any

from elasticsearch import AsyncElasticsearch


def build_ssl_context(config: dict[str, Any]) -> ssl.SSLContext:
    """Build SSL context from configuration."""
    if not config.get("tls_verify", True):
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        return ctx

    ca_cert = config.get("ca_cert", "")
    if ca_cert:
        return ssl.create_default_context(cafile=ca_cert)

    return ssl.create_default_context()


def build_client(config: dict[str, Any]) -> AsyncElasticsearch:
    """Create an async client for the configured endpoint.

    Required config keys:
        endpoint: str       - Elasticsearch URL (e.g. https://host:9200)

    Optional config keys:
        auth_user: str      - Username for authentication
        auth_password: str  - Password for authentication
        tls_verify: bool    - Verify TLS certificates (default: True)
        ca_cert: str        - Path to CA certificate file
    """
    endpoint = str(config["endpoint"])
    auth_user = config.get("auth_user", "")
    auth_password = config.get("auth_password", "")

    client_kwargs: dict[str, Any] = {
        "hosts": [endpoint],
        "request_timeout": 30,
        "retry_on_timeout": True,
        "max_retries": 3,
    }
    if endpoint.startswith("https"):
        client_kwargs["ssl_context"] = build_ssl_context(config)
    if auth_user and auth_password:
        client_kwargs["basic_auth"] = (auth_user, auth_password)

    return AsyncElasticsearch(**client_kwargs)
