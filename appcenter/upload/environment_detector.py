"""
App Center Environment Detector

Detects and validates the environment variables used by the uploader and
builds an AppCenterConfig from them, layered over YAML settings.
"""

import os
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .exceptions import EnvironmentValidationError
from .models import AppCenterConfig, PollingPolicy, ProxyConfig, RetryPolicy


class AppCenterEnvironmentDetector:
    """Detects and validates the App Center upload environment"""

    REQUIRED_VARS = [
        "APPCENTER_API_TOKEN",
    ]

    # env var -> (settings section, key, type)
    OPTIONAL_VARS = {
        "APPCENTER_BASE_URL": ("appcenter", "base_url", str),
        "APPCENTER_REQUEST_TIMEOUT": ("appcenter", "request_timeout", int),
        "APPCENTER_MAX_CONCURRENT_CHUNKS": ("appcenter", "max_concurrent_chunks", int),
        "APPCENTER_RETRY_ATTEMPTS": ("retry", "max_attempts", int),
        "APPCENTER_POLL_INTERVAL": ("polling", "interval", float),
        "APPCENTER_POLL_MAX_WAIT": ("polling", "max_wait", float),
        "APPCENTER_PROXY_HOST": ("proxy", "host", str),
        "APPCENTER_PROXY_PORT": ("proxy", "port", int),
        "APPCENTER_PROXY_USER": ("proxy", "username", str),
        "APPCENTER_PROXY_PASSWORD": ("proxy", "password", str),
    }

    def is_upload_enabled(self) -> bool:
        """Check if all required environment variables are present"""
        return all(os.getenv(var) for var in self.REQUIRED_VARS)

    def get_missing_variables(self) -> List[str]:
        """Get list of missing required environment variables"""
        return [var for var in self.REQUIRED_VARS if not os.getenv(var)]

    def get_upload_config(self, settings: Optional[Dict[str, Any]] = None,
                          api_token: Optional[str] = None) -> AppCenterConfig:
        """Build configuration from settings, overridden by environment variables"""
        api_token = api_token or os.getenv("APPCENTER_API_TOKEN")
        if not api_token:
            raise EnvironmentValidationError(
                "Missing required environment variables: APPCENTER_API_TOKEN",
                missing_vars=self.get_missing_variables()
            )

        merged = self._apply_environment(settings or {})
        appcenter = merged.get("appcenter", {})
        retry = merged.get("retry", {})
        polling = merged.get("polling", {})

        base_url = appcenter.get("base_url") or "https://api.appcenter.ms/"
        if not self._validate_api_url(base_url):
            raise EnvironmentValidationError(f"Invalid API URL format: {base_url}")

        return AppCenterConfig(
            api_token=api_token,
            base_url=base_url,
            request_timeout=int(appcenter.get("request_timeout", 60)),
            max_concurrent_chunks=int(appcenter.get("max_concurrent_chunks", 4)),
            retry=RetryPolicy(
                max_attempts=int(retry.get("max_attempts", 3)),
                initial_delay=float(retry.get("initial_delay", 1.0)),
                max_delay=float(retry.get("max_delay", 30.0))
            ),
            polling=PollingPolicy(
                interval=float(polling.get("interval", 5.0)),
                max_wait=float(polling.get("max_wait", 300.0)),
                max_attempts_per_poll=int(polling.get("max_attempts_per_poll", 3))
            ),
            proxy=self._build_proxy(merged.get("proxy") or {})
        )

    def _apply_environment(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        merged = {section: dict(values or {}) for section, values in settings.items()
                  if isinstance(values, dict) or values is None}
        for var_name, (section, key, var_type) in self.OPTIONAL_VARS.items():
            env_value = os.getenv(var_name)
            if not env_value:
                continue
            try:
                merged.setdefault(section, {})[key] = var_type(env_value)
            except ValueError:
                raise EnvironmentValidationError(f"Invalid value for {var_name}: {env_value}") from None
        return merged

    def _build_proxy(self, proxy: Dict[str, Any]) -> Optional[ProxyConfig]:
        if not proxy.get("host"):
            return None
        if not proxy.get("port"):
            raise EnvironmentValidationError("Proxy host configured without a port")
        return ProxyConfig(
            host=proxy["host"],
            port=int(proxy["port"]),
            username=proxy.get("username"),
            password=proxy.get("password")
        )

    def _validate_api_url(self, url: Optional[str]) -> bool:
        """Validate API URL format"""
        if not url:
            return False
        parsed = urlparse(url)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)

    def get_environment_summary(self) -> dict:
        """Get summary of environment configuration for debugging"""
        summary = {
            "upload_enabled": self.is_upload_enabled(),
            "missing_variables": self.get_missing_variables(),
            "detected_variables": {}
        }

        for var in self.REQUIRED_VARS + list(self.OPTIONAL_VARS):
            value = os.getenv(var)
            if value and ("TOKEN" in var or "PASSWORD" in var):
                summary["detected_variables"][var] = f"{value[:4]}...{value[-4:]}"
            else:
                summary["detected_variables"][var] = value

        return summary
