from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

CAPTURE_FORMATS: tuple[str, ...] = ("image/jpeg", "image/webp")


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name) or default)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name) or default)
    except ValueError:
        return default


@dataclass
class AutomationConfig:
    cdp_host: str = "127.0.0.1"
    cdp_port: int = 9222
    command_timeout: float = 5.0
    stage_timeout: float = 30.0
    staging_dir: str = field(default_factory=lambda: expand_path("~/.cache/tab-automation/staged"))
    channel_host: str = "127.0.0.1"
    channel_port: int = 8766
    allow_hosts: list[str] = field(default_factory=list)
    http_timeout: float = 10.0
    http_max_bytes: int = 50_000_000
    default_quality: float = 0.8
    default_format: str = "image/jpeg"

    @staticmethod
    def normalize_format(raw: str | None) -> str:
        fmt = (raw or "").strip().lower()
        if fmt in {"webp", "image/webp"}:
            return "image/webp"
        return "image/jpeg"

    @classmethod
    def from_env(cls) -> AutomationConfig:
        allow_raw = os.environ.get("MCP_ALLOW_HOSTS", "")
        allow_hosts = [host.strip().lower() for host in allow_raw.split(",") if host.strip() and host.strip() != "*"]
        stage_timeout = max(1.0, min(_env_float("MCP_STAGE_TIMEOUT", 30.0), 300.0))
        quality = max(0.0, min(_env_float("MCP_CAPTURE_QUALITY", 0.8), 1.0))
        return cls(
            cdp_host=(os.environ.get("MCP_BROWSER_HOST") or "127.0.0.1").strip() or "127.0.0.1",
            cdp_port=_env_int("MCP_BROWSER_PORT", 9222),
            command_timeout=_env_float("MCP_CDP_TIMEOUT", 5.0),
            stage_timeout=stage_timeout,
            staging_dir=expand_path(os.environ.get("MCP_STAGING_DIR") or "~/.cache/tab-automation/staged"),
            channel_host=(os.environ.get("MCP_CHANNEL_HOST") or "127.0.0.1").strip() or "127.0.0.1",
            channel_port=_env_int("MCP_CHANNEL_PORT", 8766),
            allow_hosts=allow_hosts,
            http_timeout=_env_float("MCP_HTTP_TIMEOUT", 10.0),
            http_max_bytes=_env_int("MCP_HTTP_MAX_BYTES", 50_000_000),
            default_quality=quality,
            default_format=cls.normalize_format(os.environ.get("MCP_CAPTURE_FORMAT")),
        )

    @property
    def cdp_http_base(self) -> str:
        return f"http://{self.cdp_host}:{self.cdp_port}"

    def is_host_allowed(self, host: str) -> bool:
        host = (host or "").strip().lower().rstrip(".")
        if not self.allow_hosts:
            return True
        for raw_allowed in self.allow_hosts:
            allowed = (raw_allowed or "").strip().lower().lstrip(".").rstrip(".")
            if not allowed:
                continue
            if host == allowed:
                return True
            if host.endswith("." + allowed):
                return True
        return False
