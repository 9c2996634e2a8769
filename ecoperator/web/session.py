import aiohttp
from typing import Any, Dict, Mapping, Optional, Union
from marshmallow import Schema
from yarl import URL

from ecoperator.types.base import JSON

from .error import AuthenticationError, NotFoundError

HEADERS = {
    "Accept": "*/*",
    "Accept-Encoding": "gzip, deflate",
    "Content-Type": "application/json; charset=utf-8",
    "Connection": "keep-alive",
}

"""Default timeout in seconds"""
TIMEOUT: int = 10


class SessionManager:
    """Thin wrapper over a shared aiohttp session.

    The session is created lazily so the manager can be built before an
    event loop is running (e.g. at import or in tests).
    """

    def __init__(self, headers: Optional[Mapping] = None, **kwargs: Any) -> None:
        merged_headers = dict(**HEADERS)
        merged_headers.update(headers or {})
        self.headers = merged_headers
        self.timeout = kwargs.pop("timeout", TIMEOUT)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)
        return self._session

    def _check(self, res: aiohttp.ClientResponse) -> None:
        if res.status == 401:
            raise AuthenticationError("Unauthorized")
        if res.status == 403:
            raise AuthenticationError("Forbidden")
        if res.status == 404:
            raise NotFoundError(f"Not found: {res.url}")

    async def get(
        self,
        url: Union[str, URL],
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Mapping] = None,
        raise_errors: bool = True,
        schema: Optional[Schema] = None,
        many: bool = False,
    ) -> Any:
        """Run a wrapped session HTTP GET request.
        Args:
            url: The url to get from.
            params: query string parameters
            headers: A dict adding to and overriding the session headers.
            raise_errors: Whether or not raise errors on GET request result.
            schema: An instance of a `marshmallow.Schema` that represents the object
                to build.
            many: Whether to treat the output as a list of the passed schema.
        Returns:
            A JSON dictionary or a constructed object if a schema is passed.
        Raises:
            ValueError: If the schema is not an instance of `Schema` and is instead
                a class.
        """
        # Guard against common gotcha, passing schema class instead of instance.
        if isinstance(schema, type):
            raise ValueError("Passed Schema should be an instance not a class.")

        async with self.session.get(
            str(url),
            params=params or {},
            headers=headers or {},
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as res:
            self._check(res)
            if raise_errors:
                res.raise_for_status()
            # metadata buckets serve json as octet-stream
            data = await res.json(content_type=None)
            return data if schema is None else schema.load(data, many=many)

    async def get_bytes(
        self,
        url: Union[str, URL],
        headers: Optional[Mapping] = None,
    ) -> bytes:
        """Run a wrapped session HTTP GET request and return the raw body."""
        async with self.session.get(
            str(url),
            headers=headers or {},
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as res:
            self._check(res)
            res.raise_for_status()
            return await res.read()

    async def get_text(
        self,
        url: Union[str, URL],
        headers: Optional[Mapping] = None,
    ) -> str:
        """Run a wrapped session HTTP GET request and return the body as text."""
        async with self.session.get(
            str(url),
            headers=headers or {},
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as res:
            self._check(res)
            res.raise_for_status()
            return await res.text()

    async def post(
        self,
        url: Union[str, URL],
        data: Optional[JSON] = None,
        headers: Optional[Mapping] = None,
        raise_errors: bool = True,
    ) -> Optional[int]:
        """Run a wrapped session HTTP POST request and return the response status."""
        async with self.session.post(
            str(url),
            json=data,
            headers=headers or {},
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as res:
            self._check(res)
            if raise_errors:
                res.raise_for_status()
            return res.status

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}<timeout={self.timeout}>"

    async def close(self) -> None:
        """Close the underlying session"""
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
