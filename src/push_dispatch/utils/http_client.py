"""aiohttp-backed HTTP client used by the REST push provider.

Retries are not done here: the dispatch engine's ``RetryPolicy`` owns the
retry decision so every attempt is rate limited and classified the same way
regardless of which provider is configured.
"""

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Self

import aiohttp

from push_dispatch.types.models import Response
from push_dispatch.utils.sanitization import sanitize_url


class AIOHTTPClient:
    """Async HTTP client implementing the ``HTTPClient`` protocol.

    The session is created on ``__aenter__`` and closed on ``__aexit__``;
    a single client is shared by every request in the process.

    Example:
        >>> async with AIOHTTPClient() as client:
        ...     response = await client.post(
        ...         "https://push.example.com/v1/messaging/messages/push",
        ...         {"title": "hi"},
        ...         timeout=8.0,
        ...     )
    """

    def __init__(
        self,
        *,
        default_timeout_seconds: float = 10.0,
        connection_limit: int = 100,
    ) -> None:
        """Initialize the client.

        Args:
            default_timeout_seconds: Session-wide total timeout
            connection_limit: Maximum pooled connections held by the session
        """
        self._default_timeout_seconds: float = default_timeout_seconds
        self._connection_limit: int = connection_limit
        self._session: aiohttp.ClientSession | None = None
        self._logger: logging.Logger = logging.getLogger(__name__)

    async def __aenter__(self) -> Self:
        timeout = aiohttp.ClientTimeout(total=self._default_timeout_seconds)
        connector = aiohttp.TCPConnector(limit=self._connection_limit)
        self._session = aiohttp.ClientSession(
            timeout=timeout,
            connector=connector,
            json_serialize=json.dumps,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def post(
        self,
        url: str,
        payload: Mapping[str, object],
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float,
    ) -> Response:
        """Send a JSON POST request.

        Args:
            url: Target URL
            payload: Request body, JSON-encoded
            headers: Extra request headers
            timeout: Hard deadline for the whole exchange in seconds

        Returns:
            Response with status, decoded JSON body (empty when the body is
            not JSON) and headers

        Raises:
            RuntimeError: If used outside ``async with``
            TimeoutError: If the exchange exceeds ``timeout``
            ValueError: If the URL is malformed
            aiohttp.ClientError: For connection failures
        """
        if self._session is None:
            msg = "HTTP client session not initialized. Use 'async with' context manager."
            raise RuntimeError(msg)

        safe_url = sanitize_url(url)
        self._logger.debug("POST %s", safe_url)

        try:
            async with asyncio.timeout(timeout):
                async with self._session.post(url, json=payload, headers=dict(headers or {})) as response:
                    body: Mapping[str, object]
                    try:
                        decoded: object = await response.json()  # pyright: ignore[reportAny]
                    except (aiohttp.ContentTypeError, ValueError):
                        decoded = {}
                    body = decoded if isinstance(decoded, Mapping) else {}  # pyright: ignore[reportUnknownVariableType]

                    return Response(
                        status=response.status,
                        body=body,  # pyright: ignore[reportUnknownArgumentType]
                        headers=dict(response.headers),
                    )
        except TimeoutError:
            self._logger.warning("Request to %s timed out after %.1fs", safe_url, timeout)
            raise
        except aiohttp.InvalidURL as exc:
            self._logger.error("Invalid URL: %s", safe_url)
            raise ValueError(f"Malformed URL: {safe_url}") from exc
        except aiohttp.ClientError as exc:
            self._logger.warning("Client error for %s: %s", safe_url, exc)
            raise
