"""Client for the Traccar GPS tracking server REST API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests
from requests.exceptions import RequestException

from config_models import TraccarConfig

logger = logging.getLogger(__name__)


class TraccarError(Exception):
    """Exception raised for Traccar API errors."""

    pass


@dataclass(frozen=True)
class ExternalLink:
    """Outcome of a best-effort registration on the tracking server."""

    external_id: Optional[int] = None
    error: Optional[str] = None

    @property
    def linked(self) -> bool:
        return self.external_id is not None


class TraccarClient:
    def __init__(self, config: TraccarConfig):
        self.config = config

    @property
    def is_configured(self) -> bool:
        return bool(self.config.enabled and self.config.api_url)

    def _request(self, method: str, path: str, **kwargs) -> Any:
        if not self.is_configured:
            raise TraccarError("Tracking server is not configured")
        url = f"{self.config.api_url}{path}"
        try:
            response = requests.request(
                method,
                url,
                auth=(self.config.username, self.config.password),
                headers={"Accept": "application/json"},
                timeout=self.config.timeout,
                **kwargs,
            )
            response.raise_for_status()
            return response.json()

        except requests.exceptions.Timeout:
            logger.error("Timeout calling Traccar %s %s", method, path)
            raise TraccarError("Connection to tracking server timed out")

        except requests.exceptions.HTTPError as e:
            logger.error("Traccar HTTP error on %s %s: %s", method, path, e)
            raise TraccarError(f"Tracking server error: {e.response.status_code}")

        except RequestException as e:
            logger.error("Traccar request failed on %s %s: %s", method, path, e)
            raise TraccarError("Request to tracking server failed")

        except ValueError:
            raise TraccarError("Invalid response from tracking server")

    # -- users / devices ---------------------------------------------------

    def create_user(self, name: str, email: str, password: str) -> dict:
        return self._request(
            "POST",
            "/users",
            json={
                "name": name,
                "email": email,
                "password": password,
                "administrator": False,
                "readonly": False,
                "disabled": False,
            },
        )

    def create_device(self, name: str, unique_id: str) -> dict:
        return self._request(
            "POST", "/devices", json={"name": name, "uniqueId": unique_id, "disabled": False}
        )

    @staticmethod
    def _link_from(body) -> ExternalLink:
        external_id = body.get("id") if isinstance(body, dict) else None
        if not isinstance(external_id, int) or isinstance(external_id, bool):
            logger.warning("Unexpected Traccar response: %r", body)
            return ExternalLink(error="Invalid response from tracking server")
        return ExternalLink(external_id=external_id)

    def link_user(self, name: str, email: str, password: str) -> ExternalLink:
        """Register a user, reporting failure instead of raising."""
        try:
            return self._link_from(self.create_user(name, email, password))
        except TraccarError as e:
            return ExternalLink(error=str(e))

    def link_device(self, name: str, unique_id: str) -> ExternalLink:
        """Register a device, reporting failure instead of raising."""
        try:
            return self._link_from(self.create_device(name, unique_id))
        except TraccarError as e:
            return ExternalLink(error=str(e))

    # -- tracking data -----------------------------------------------------

    def _list(self, method: str, path: str, **kwargs) -> list:
        body = self._request(method, path, **kwargs)
        if not isinstance(body, list):
            logger.error("Traccar %s %s returned %s, expected a list", method, path, type(body).__name__)
            raise TraccarError("Invalid response from tracking server")
        return body

    def get_positions(self, device_id: int) -> list:
        return self._list("GET", "/positions", params={"deviceId": device_id})

    def route_report(self, device_id: int, start: str, end: str) -> list:
        return self._list(
            "GET",
            "/reports/route",
            params={"deviceId": device_id, "from": start, "to": end},
        )
