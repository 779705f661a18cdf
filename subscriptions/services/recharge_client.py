# subscriptions/services/recharge_client.py
"""
HTTP client for the Recharge subscription API (the remote ledger).

Every call returns ``(status_code, parsed_body)``. Network errors and
timeouts are raised as ``requests`` exceptions, and a success status with a
body that is not JSON raises RemoteLedgerError; the sync worker treats both
like HTTP failures.

Usage:
    client = RechargeClient.from_settings()
    status, body = client.get('/orders', params={'subscription_id': 123, 'status': 'QUEUED'})
    status, body = client.post('/subscriptions/123/set_next_charge_date', {'date': '2024-02-20'})
"""

import json
import logging
from typing import Optional, Tuple

import requests
from django.conf import settings

from subscriptions.exceptions import RemoteLedgerError

logger = logging.getLogger(__name__)


class RechargeClient:
    """Thin wrapper around a requests.Session bound to one access token."""

    DEFAULT_TIMEOUT = 80  # seconds

    def __init__(self, base_url: str, token: str, timeout: Optional[int] = None, session=None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, session=None):
        return cls(
            base_url=settings.RECHARGE_API_URL,
            token=settings.RECHARGE_ACCESS_TOKEN,
            timeout=settings.REMOTE_LEDGER_TIMEOUT,
            session=session,
        )

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def get(self, path: str, headers: Optional[dict] = None, params: Optional[dict] = None) -> Tuple[int, dict]:
        return self._request('GET', path, headers=headers, params=params)

    def post(self, path: str, body=None, headers: Optional[dict] = None, timeout=None) -> Tuple[int, dict]:
        return self._request('POST', path, body=body, headers=headers, timeout=timeout)

    def put(self, path: str, body=None, headers: Optional[dict] = None, timeout=None) -> Tuple[int, dict]:
        return self._request('PUT', path, body=body, headers=headers, timeout=timeout)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def headers(self, extra: Optional[dict] = None) -> dict:
        headers = {
            'X-Recharge-Access-Token': self.token,
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method, path, body=None, headers=None, params=None, timeout=None):
        url = f"{self.base_url}/{path.lstrip('/')}"
        data = json.dumps(body) if body is not None else None

        logger.debug(f"Recharge {method} {url} params={params} body={data}")
        response = self.session.request(
            method,
            url,
            headers=self.headers(headers),
            params=params,
            data=data,
            timeout=timeout or self.timeout,
        )
        parsed = self._parse(response)
        logger.info(f"Recharge {method} {path} -> {response.status_code}")
        if is_success(response.status_code) and isinstance(parsed, dict) and 'raw' in parsed:
            raise RemoteLedgerError(f"Recharge {method} {path} returned a non-JSON body")
        return response.status_code, parsed

    @staticmethod
    def _parse(response) -> dict:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {'raw': response.text}


def is_success(status_code) -> bool:
    return status_code is not None and 200 <= int(status_code) < 300
