"""Supabase edge-function transport for the ingestion protocol."""

from dataclasses import dataclass

import httpx

from pantry_scanner.config import functions_base_url
from pantry_scanner.services.ingestion import IngestionTransport


@dataclass
class HttpxIngestTransport(IngestionTransport):
    """Posts JSON bodies to ``{functions_url}/<function_name>``."""

    functions_url: str
    api_key: str
    access_token: str | None
    http_client: httpx.AsyncClient

    @classmethod
    def create(
        cls, supabase_url: str, api_key: str, access_token: str | None = None
    ) -> "HttpxIngestTransport":
        """Create a transport with a managed httpx session."""
        return cls(
            functions_url=functions_base_url(supabase_url),
            api_key=api_key,
            access_token=access_token,
            http_client=httpx.AsyncClient(),
        )

    async def invoke(
        self, function_name: str, body: dict[str, object], timeout: float
    ) -> dict[str, object]:
        """Invoke an edge function and return its JSON body."""
        response = await self.http_client.post(
            f"{self.functions_url}/{function_name}",
            json=body,
            headers={
                "Authorization": f"Bearer {self.access_token or self.api_key}",
                "apikey": self.api_key,
            },
            timeout=timeout,
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"{function_name} returned a non-object body")
        return payload

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
