"""Ollama HTTP client — two fixed GET endpoints, no retries.

Every call degrades to "no body" on transport trouble; nothing raised by httpx
escapes this module. Retrying is left to the refresh cadence.
"""

from __future__ import annotations

import logging

import httpx

from ollamon.jsonscan import (
    extract_array_of_strings,
    extract_int,
    extract_object_list,
    extract_string,
)
from ollamon.models import InstalledModelRecord, LoadedModelRecord, ServiceSnapshot

log = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:11434"
DEFAULT_TIMEOUT_S = 5.0

TAGS_ENDPOINT = "/api/tags"
PS_ENDPOINT = "/api/ps"
LISTING_MARKER = '"models"'
USER_AGENT = "ollamon/1.0"


def parse_loaded_model(raw: str) -> LoadedModelRecord:
    """Build a record from one raw /api/ps model object."""
    return LoadedModelRecord(
        name=extract_string(raw, "name"),
        model_id=extract_string(raw, "model"),
        size_bytes=extract_int(raw, "size"),
        expires_at=extract_string(raw, "expires_at"),
        digest=extract_string(raw, "digest"),
        parent_model=extract_string(raw, "parent_model"),
        format=extract_string(raw, "format"),
        family=extract_string(raw, "family"),
        families=tuple(extract_array_of_strings(raw, "families")),
        parameter_size=extract_string(raw, "parameter_size"),
        quantization_level=extract_string(raw, "quantization_level"),
    )


def parse_installed_model(raw: str) -> InstalledModelRecord:
    """Build a record from one raw /api/tags model object."""
    return InstalledModelRecord(
        name=extract_string(raw, "name"),
        model_id=extract_string(raw, "model"),
        size_bytes=extract_int(raw, "size"),
        digest=extract_string(raw, "digest"),
        modified_at=extract_string(raw, "modified_at"),
    )


class ModelServiceClient:
    """Talks to one Ollama server.

    All phases (connect, write, read, pool) share the same short timeout.
    Connections are closed after every call.
    """

    def __init__(self, base_url: str = DEFAULT_URL, timeout: float = DEFAULT_TIMEOUT_S,
                 transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = httpx.Client(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": USER_AGENT, "Connection": "close"},
            transport=transport,
        )

    def _get(self, endpoint: str) -> str:
        """GET endpoint and return the body, or "" on any failure."""
        url = f"{self.base_url}{endpoint}"
        try:
            response = self._http.get(url)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log.debug("GET %s failed: %s", url, exc)
            return ""
        return response.text

    def probe(self) -> bool:
        """True iff the listing endpoint answers with a models listing."""
        body = self._get(TAGS_ENDPOINT)
        return bool(body) and LISTING_MARKER in body

    def fetch_running(self) -> list[LoadedModelRecord] | None:
        """Loaded models, or None when /api/ps could not be fetched at all."""
        body = self._get(PS_ENDPOINT)
        if not body:
            return None
        return self._records(body, parse_loaded_model)

    def fetch_catalog(self) -> list[InstalledModelRecord]:
        body = self._get(TAGS_ENDPOINT)
        if not body:
            return []
        return self._records(body, parse_installed_model)

    def poll(self) -> ServiceSnapshot:
        loaded = self.fetch_running()
        if loaded is None:
            return ServiceSnapshot.unreachable()
        return ServiceSnapshot.reachable_with(loaded)

    @staticmethod
    def _records(body: str, parse) -> list:
        records = []
        for raw in extract_object_list(body, "models"):
            record = parse(raw)
            if not record.name:
                log.debug("dropping model entry without a name: %.80s", raw)
                continue
            records.append(record)
        return records

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> ModelServiceClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
