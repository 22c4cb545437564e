# signal_wizard/client.py
"""
Signal API Client

Async client for the backend services the wizard depends on:
NLP query enhancement, entity suggestions and signal persistence.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

import httpx

from .models import (
    EntityRef,
    PersistedSignal,
    QueryNode,
    SignalPayload,
)

logger = logging.getLogger(__name__)


@dataclass
class Environment:
    """Client environment configuration."""
    name: str
    api_url: str


# Predefined environments
ENVIRONMENTS = {
    "local": Environment(name="local", api_url="http://localhost:8001"),
}


def _json_object(response: httpx.Response) -> Dict[str, Any]:
    """Decode a response body that must be a JSON object."""
    data = response.json()
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object from {response.request.url.path}, got {type(data).__name__}")
    return data


class EnhancementClient:
    """Client for the NLP conversion service."""

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def enhance(self, text: str) -> QueryNode:
        """Convert natural-language text into a structured query."""
        response = await self._http.post("/api/v1/enhance", json={"text": text})
        response.raise_for_status()
        data = _json_object(response)
        return QueryNode.model_validate(data["structuredQuery"])


class SuggestionsClient:
    """Client for entity suggestion search."""

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def suggest(self, query: str, title: Optional[str] = None) -> List[EntityRef]:
        """Search people, companies and topics matching ``query``."""
        params = {"query": query}
        if title:
            params["title"] = title

        response = await self._http.get("/api/v1/suggest", params=params)
        response.raise_for_status()
        entities = _json_object(response).get("entities", [])
        if not isinstance(entities, list):
            raise ValueError(f"Expected a list of entities, got {type(entities).__name__}")
        return [EntityRef.model_validate(e) for e in entities]


class SignalsClient:
    """Client for signal persistence."""

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def get(self, signal_id: str) -> Optional[PersistedSignal]:
        """Get a saved signal by ID."""
        response = await self._http.get(f"/api/v1/signals/{signal_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = _json_object(response)
        return PersistedSignal.model_validate(data.get("signal", data))

    async def create(self, payload: SignalPayload) -> str:
        """Create a signal; returns its ID."""
        response = await self._http.post(
            "/api/v1/signals",
            json=payload.model_dump(mode="json", by_alias=True),
        )
        response.raise_for_status()
        return str(_json_object(response)["id"])

    async def update(self, signal_id: str, payload: SignalPayload) -> str:
        """Replace a saved signal's definition; returns its ID."""
        response = await self._http.put(
            f"/api/v1/signals/{signal_id}",
            json=payload.model_dump(mode="json", by_alias=True),
        )
        response.raise_for_status()
        return str(_json_object(response).get("id", signal_id))


class SignalApiClient:
    """
    Async signal API client.

    Example:
        ```python
        async with SignalApiClient(environment="local") as client:
            query = await client.enhancement.enhance("mentions of Acme")
            entities = await client.suggestions.suggest("acme")
            signal = await client.signals.get("sig_123")
        ```
    """

    def __init__(
        self,
        environment: str = "local",
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the async signal API client.

        Args:
            environment: Environment name; "local" has a built-in URL
            api_url: Override the API URL
            api_key: API key for authentication (optional)
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        # Resolve environment
        if environment in ENVIRONMENTS:
            base = ENVIRONMENTS[environment]
            self._env = Environment(name=base.name, api_url=base.api_url)
        else:
            self._env = Environment(name=environment, api_url="")

        if api_url:
            self._env.api_url = api_url

        if not self._env.api_url:
            self._env.api_url = os.environ.get("SIGNAL_WIZARD_API_URL", "http://localhost:8001")

        api_key = api_key or os.environ.get("SIGNAL_WIZARD_API_KEY")

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._http = httpx.AsyncClient(
            base_url=self._env.api_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

        self.enhancement = EnhancementClient(self._http)
        self.suggestions = SuggestionsClient(self._http)
        self.signals = SignalsClient(self._http)

        logger.info(f"SignalApiClient initialized for {self._env.name} ({self._env.api_url})")

    @classmethod
    def from_config(cls, config) -> "SignalApiClient":
        """Build a client from a WizardConfig."""
        return cls(
            environment=config.environment,
            api_url=config.api_url,
            api_key=config.api_key or None,
            timeout=config.timeout,
        )

    async def close(self):
        """Close the HTTP client."""
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
