from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    dry_run: bool = True
    trigger: Literal["expired", "blocked"] = "expired"
    metrics_port: int = 8080
    sync_period_seconds: int = 1800
    watch_timeout_seconds: int = 300
    log_level: str = "INFO"

    k8s_mode: Literal["local", "kubeconfig", "sa"] = "local"
    kubeconfig: str | None = None
    k8s_host: str = "https://kubernetes.default.svc"
    sa_token: str | None = None
    sa_ca_crt: str | None = None

    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "disruption-controller"

    class Config:
        env_prefix = "DISRUPTION_"
        case_sensitive = False
