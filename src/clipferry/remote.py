from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

import httpx

from .app_logging import LOGGER_NAME, log_with_fields
from .config import LibraryConfig
from .errors import FatalRemoteError, MalformedResponseError, TransientRemoteError
from .models import CollectionRef
from .utils import iter_file_chunks

COLLECTIONS_PAGE_SIZE = 100


class RemoteClient(Protocol):
    """Operations the upload pipeline needs from the hosting service."""

    def resolve_or_create_collection(self, name: str) -> CollectionRef: ...

    def create_video(self, collection_id: str, title: str) -> str: ...

    def upload_video(self, video_id: str, path: Path) -> None: ...

    def is_retryable(self, error: BaseException) -> bool: ...


class StreamApiClient:
    """httpx client for a Bunny Stream style video library API."""

    def __init__(
        self,
        library: LibraryConfig,
        *,
        http_client: httpx.Client | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.library = library
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self._base_url = f"{library.api_base.rstrip('/')}/library/{library.library_id}"
        self._client = http_client or httpx.Client(timeout=library.timeout_seconds)
        self._owns_client = http_client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> StreamApiClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _headers(self, content_type: str = "application/json") -> dict[str, str]:
        return {
            "AccessKey": self.library.api_key,
            "Accept": "application/json",
            "Content-Type": content_type,
        }

    def _request(self, method: str, path: str, context: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise TransientRemoteError(f"{context} failed: {exc.__class__.__name__}: {exc}") from exc

        if response.is_success:
            return response

        detail = self._error_detail(response)
        message = f"{context} failed: HTTP {response.status_code} {detail}".rstrip()
        if response.status_code >= 500:
            raise TransientRemoteError(message, status_code=response.status_code)
        raise FatalRemoteError(message, status_code=response.status_code)

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text.strip()[:200]
        if isinstance(body, dict):
            return str(body.get("Message") or body.get("message") or body)
        return str(body)

    @staticmethod
    def _json_object(response: httpx.Response, context: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"{context}: response is not JSON") from exc
        if not isinstance(body, dict):
            raise MalformedResponseError(f"{context}: expected a JSON object, got {type(body).__name__}")
        return body

    def _require_guid(self, body: dict[str, Any], context: str) -> str:
        guid = body.get("guid")
        if not guid:
            raise MalformedResponseError(f"{context}: response has no guid")
        return str(guid)

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------
    def find_collection(self, name: str) -> CollectionRef | None:
        page = 1
        while True:
            response = self._request(
                "GET",
                "/collections",
                f"list collections for {name!r}",
                params={"page": page, "itemsPerPage": COLLECTIONS_PAGE_SIZE, "search": name},
                headers=self._headers(),
            )
            body = self._json_object(response, "list collections")
            items = body.get("items")
            if not isinstance(items, list):
                raise MalformedResponseError("list collections: response has no items list")
            for item in items:
                if isinstance(item, dict) and item.get("name") == name:
                    return CollectionRef(name=name, remote_id=self._require_guid(item, "list collections"))
            total = int(body.get("totalItems") or 0)
            if not items or page * COLLECTIONS_PAGE_SIZE >= total:
                return None
            page += 1

    def create_collection(self, name: str) -> CollectionRef:
        response = self._request(
            "POST",
            "/collections",
            f"create collection {name!r}",
            json={"name": name},
            headers=self._headers(),
        )
        body = self._json_object(response, "create collection")
        return CollectionRef(name=name, remote_id=self._require_guid(body, "create collection"))

    def resolve_or_create_collection(self, name: str) -> CollectionRef:
        existing = self.find_collection(name)
        if existing is not None:
            log_with_fields(self.logger, logging.INFO, "collection_found", collection=name, guid=existing.remote_id)
            return existing
        created = self.create_collection(name)
        log_with_fields(self.logger, logging.INFO, "collection_created", collection=name, guid=created.remote_id)
        return created

    def create_video(self, collection_id: str, title: str) -> str:
        response = self._request(
            "POST",
            "/videos",
            f"create video {title!r}",
            json={"title": title, "collectionId": collection_id},
            headers=self._headers(),
        )
        body = self._json_object(response, "create video")
        return self._require_guid(body, "create video")

    def upload_video(self, video_id: str, path: Path) -> None:
        headers = self._headers("application/octet-stream")
        headers["Content-Length"] = str(path.stat().st_size)
        self._request(
            "PUT",
            f"/videos/{video_id}",
            f"upload {path.name}",
            content=iter_file_chunks(path),
            headers=headers,
        )

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, TransientRemoteError)
