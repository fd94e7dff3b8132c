# job_search/http_client.py
from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


DEFAULT_USER_AGENT = "job-search-agent/1.0"


class HttpClient:
    """Shared HTTP client with sane defaults and simple helpers."""

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        retries: int = 3,
        retry_methods: tuple[str, ...] = ("GET", "POST", "HEAD"),
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        retry = Retry(
            total=retries,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(retry_methods),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=20)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """GET and parse JSON with clearer errors if decoding fails."""
        resp = self.session.get(url, params=params, headers=headers, timeout=timeout or self.timeout)
        resp.raise_for_status()
        return _decode_json(resp, url)

    def post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        *,
        timeout: float | None = None,
        raise_for_status: bool = True,
    ) -> Any:
        """
        POST a JSON body and return the decoded JSON response.

        With raise_for_status=False the body is returned even for 4xx/5xx, for
        APIs (like Telegram's) that explain failures in the JSON payload.
        """
        resp = self.session.post(url, json=dict(payload), timeout=timeout or self.timeout)
        if raise_for_status:
            resp.raise_for_status()
        return _decode_json(resp, url)


def _decode_json(resp: requests.Response, url: str) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        try:
            return json.loads(resp.text)
        except ValueError:
            preview = resp.text[:200].replace("\n", " ")
            # Telegram URLs embed the bot token; keep only scheme+host in errors.
            safe_url = "/".join(url.split("/")[:3])
            raise ValueError(f"JSON decode failed for {safe_url!r}; body starts: {preview!r}") from e
