from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from kubernetes import client, config
from kubernetes.client import CoreV1Api, CustomObjectsApi

if TYPE_CHECKING:
    from controller.settings import Settings

logger = logging.getLogger(__name__)


def get_client(settings: Settings) -> tuple[CoreV1Api, CustomObjectsApi]:
    """Get Kubernetes clients based on the configured k8s_mode."""
    mode = settings.k8s_mode

    if mode == "sa":
        # Service account mode
        if not settings.sa_token:
            raise RuntimeError("DISRUPTION_SA_TOKEN required when DISRUPTION_K8S_MODE=sa")

        configuration = client.Configuration()
        configuration.host = settings.k8s_host
        configuration.ssl_ca_cert = settings.sa_ca_crt or None
        configuration.api_key_prefix["authorization"] = "Bearer"
        configuration.api_key["authorization"] = settings.sa_token

        api_client = client.ApiClient(configuration)
        return client.CoreV1Api(api_client), client.CustomObjectsApi(api_client)

    elif mode == "kubeconfig":
        config.load_kube_config(config_file=_kubeconfig_path(settings))
        return client.CoreV1Api(), client.CustomObjectsApi()

    else:
        # local mode: try in-cluster first, fallback to kubeconfig
        try:
            config.load_incluster_config()
        except config.ConfigException:
            logger.info("In-cluster config wasn't detected, trying to build from KUBECONFIG")
            config.load_kube_config(config_file=_kubeconfig_path(settings))
        return client.CoreV1Api(), client.CustomObjectsApi()


def _kubeconfig_path(settings: Settings) -> str:
    return settings.kubeconfig or os.getenv("KUBECONFIG") or os.path.expanduser("~/.kube/config")
