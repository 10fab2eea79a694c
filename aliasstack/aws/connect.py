"""
Client factory for the AWS services used by aliasstack.

Boto client creation is resource intensive, clients are therefore cached per service, region and endpoint.
"""
import logging
import threading
from typing import Optional

from boto3.session import Session
from botocore.client import BaseClient
from botocore.config import Config

from aliasstack import config

LOG = logging.getLogger(__name__)

MAX_POOL_CONNECTIONS = 50


class ClientFactory:
    """
    Factory to build and cache boto3 clients.
    """

    def __init__(self, session: Session = None, client_config: Config = None):
        """
        :param session: Session to be used for client creation. Will create a new session if not provided.
        :param client_config: Config used as default for client creation.
        """
        self._session: Session = session or Session()
        self._config: Config = client_config or Config(
            max_pool_connections=MAX_POOL_CONNECTIONS, retries={"mode": "standard"}
        )
        self._clients: dict[tuple, BaseClient] = {}
        self._create_client_lock = threading.RLock()

    def get_client(
        self,
        service_name: str,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ) -> BaseClient:
        region_name = region_name or config.AWS_DEFAULT_REGION
        endpoint_url = endpoint_url or config.AWS_ENDPOINT_URL
        key = (service_name, region_name, endpoint_url)

        # the session is not thread safe
        with self._create_client_lock:
            client = self._clients.get(key)
            if client is None:
                LOG.debug("Creating %s client for region %s", service_name, region_name)
                client = self._session.client(
                    service_name=service_name,
                    region_name=region_name,
                    endpoint_url=endpoint_url,
                    config=self._config,
                )
                self._clients[key] = client
            return client


connect_to = ClientFactory()
