"""Collector configuration via environment variables.

Every knob is a CEILOMETER_* variable. There is no command line; the
service is configured the same way in every deployment.
"""

import os
import logging

logger = logging.getLogger("ceilometer_collector.config")


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == "true"


class Settings:
    """All configuration sourced from environment."""

    def __init__(self):
        # Core
        self.version = "0.1.0"
        self.log_level = os.environ.get("CEILOMETER_LOG_LEVEL", "info")
        self.api_port = int(os.environ.get("CEILOMETER_API_PORT", "8080"))
        self.terminate_on_alert = _flag("CEILOMETER_TERMINATE_ON_ALERT", "false")

        # Pipeline
        self.poll_period = float(os.environ.get("CEILOMETER_POLL_PERIOD", "5"))
        self.queue_size = int(os.environ.get("CEILOMETER_QUEUE_SIZE", "1024"))

        # Elasticsearch
        self.es_endpoint = os.environ.get(
            "CEILOMETER_ES_ENDPOINT", "http://localhost:9200"
        )
        self.es_auth_user = os.environ.get("CEILOMETER_ES_AUTH_USER", "")
        self.es_auth_password = os.environ.get("CEILOMETER_ES_AUTH_PASSWORD", "")
        self.es_ca_cert = os.environ.get("CEILOMETER_ES_CA_CERT", "")
        self.es_tls_verify = _flag("CEILOMETER_ES_TLS_VERIFY", "true")

        # Indices
        self.sample_index = os.environ.get("CEILOMETER_SAMPLE_INDEX", "metering")
        self.metadata_index = os.environ.get(
            "CEILOMETER_METADATA_INDEX", "ceilometer-sources"
        )
        self.points_index = os.environ.get(
            "CEILOMETER_POINTS_INDEX", "ceilometer-points"
        )

        if self.poll_period <= 0:
            logger.warning(
                "Poll period %s is not positive, using 5s", self.poll_period
            )
            self.poll_period = 5.0

    def to_adapter_config(self) -> dict[str, object]:
        """Convert to the dict format adapters expect."""
        return {
            "endpoint": self.es_endpoint,
            "auth_user": self.es_auth_user,
            "auth_password": self.es_auth_password,
            "ca_cert": self.es_ca_cert,
            "tls_verify": self.es_tls_verify,
            "sample_index": self.sample_index,
            "metadata_index": self.metadata_index,
            "points_index": self.points_index,
        }


settings = Settings()
