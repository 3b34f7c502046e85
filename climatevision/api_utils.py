"""HTTP helpers shared by the provider clients.

Provider calls are made exactly once; failures are translated into
ProviderError and never retried here.
"""

from __future__ import annotations

from typing import Any

import httpx
from rich.console import Console

from .errors import ProviderError

console = Console()


def error_text(response: httpx.Response) -> str:
    """Best-effort human readable error text from a failed response."""
    try:
        data = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
        if data.get("detail"):
            return str(data["detail"])
        if data.get("message"):
            return str(data["message"])
    return response.text.strip()


def make_api_request(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    operation_name: str = "API request",
    step: str | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """
    Make a single HTTP request and raise ProviderError on any failure.

    Args:
        client: httpx.Client instance
        method: HTTP method (GET, POST, etc.)
        url: Request URL
        operation_name: Name for logging and error messages
        step: Optional step tag carried on the raised error
        **kwargs: Additional arguments passed to client.request()

    Returns:
        httpx.Response on success

    Raises:
        ProviderError: On transport errors or non-2xx responses
        httpx.TimeoutException: Left to the caller, which owns the timeout policy
    """
    try:
        response = client.request(method, url, **kwargs)
    except httpx.TimeoutException:
        raise
    except httpx.HTTPError as e:
        console.print(f"[red]{operation_name} failed:[/] {e}")
        raise ProviderError(f"{operation_name} failed: {e}", step=step) from e

    if response.is_error:
        detail = error_text(response)
        console.print(f"[red]{operation_name} error ({response.status_code}):[/] {detail}")
        raise ProviderError(
            f"{operation_name} error ({response.status_code}): {detail}",
            status_code=response.status_code,
            step=step,
        )

    return response


def response_json(response: httpx.Response, operation_name: str = "API request") -> Any:
    """Decode a JSON body, translating decode failures into ProviderError."""
    try:
        return response.json()
    except ValueError as e:
        raise ProviderError(f"{operation_name} returned invalid JSON: {e}") from e
