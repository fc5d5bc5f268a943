import math
import threading
from typing import Any

import requests

from ..config import Config
from ..errors import StoryblokAPIError

STORIES_PATH = "cdn/stories"
DATASOURCE_ENTRIES_PATH = "cdn/datasource_entries"
CURRENT_SPACE_PATH = "cdn/spaces/me"


class StoryblokClient:
    """Blocking client for the Storyblok Content Delivery API (v2).

    One ``requests.Session`` is kept per thread so the client can be
    shared by the thread pool that ``run_sync_limited`` dispatches to.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.base_url

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["Accept"] = "application/json"
        return session

    def _request(
        self, path: str, params: dict[str, Any] | None = None
    ) -> requests.Response:
        """
        GET *path* with the access token and non-``None`` *params*.
        """
        query: dict[str, Any] = {
            k: v for k, v in (params or {}).items() if v is not None
        }
        query["token"] = self.config.access_token

        url = f"{self.base_url}/{path.strip('/')}"
        try:
            response = self._get_session().get(
                url,
                params=query,
                timeout=self.config.timeout,
            )
        except requests.RequestException as exc:
            raise StoryblokAPIError(f"Request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise StoryblokAPIError(
                f"{path} returned HTTP {response.status_code}: "
                f"{self._error_detail(response)}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason or "no details"
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return str(body)[:200]

    @staticmethod
    def _json(response: requests.Response, path: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise StoryblokAPIError(
                f"{path} returned invalid JSON: {exc}",
                status_code=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise StoryblokAPIError(
                f"{path} returned unexpected payload type {type(body).__name__}",
                status_code=response.status_code,
            )
        return body

    def get(
        self, path: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """
        GET a single JSON document.
        """
        return self._json(self._request(path, params), path)

    def get_all(
        self,
        path: str,
        entity_key: str,
        params: dict[str, Any] | None = None,
    ) -> tuple[list[dict[str, Any]], dict[str, Any]]:
        """
        Fetch every page of a list endpoint.

        Pages are requested until the ``Total`` response header is
        reached, or until a short page when the header is missing.

        Args:
            path: Endpoint path (e.g. ``cdn/stories``)
            entity_key: Key of the list in the response body (e.g. ``stories``)
            params: Query parameters sent with every page

        Returns:
            Tuple of (all items in API order, body of the last page)
        """
        per_page = self.config.per_page
        items: list[dict[str, Any]] = []
        page = 1
        last_body: dict[str, Any] = {}

        while True:
            response = self._request(
                path, {**(params or {}), "page": page, "per_page": per_page}
            )
            last_body = self._json(response, path)
            batch = last_body.get(entity_key) or []
            items.extend(batch)

            total_header = response.headers.get("Total")
            if total_header is not None and total_header.isdigit():
                last_page = max(1, math.ceil(int(total_header) / per_page))
                if page >= last_page:
                    break
            elif len(batch) < per_page:
                break
            page += 1

        return items, last_body

    def get_stories(
        self, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """
        Get all stories matching *params* (``content_type``,
        ``published_at_gt``, ``version``, ``sort_by`` ...).
        """
        stories, _ = self.get_all(STORIES_PATH, "stories", params)
        return stories

    def get_datasource_entries(
        self,
        datasource: str,
        dimension: str | None = None,
        cv: int | None = None,
    ) -> dict[str, Any]:
        """
        Get all entries of a datasource.

        Returns:
            Dict with keys: datasource_entries (list), cv (int or None)
        """
        entries, last_body = self.get_all(
            DATASOURCE_ENTRIES_PATH,
            "datasource_entries",
            {"datasource": datasource, "dimension": dimension, "cv": cv},
        )
        return {"datasource_entries": entries, "cv": last_body.get("cv")}

    def get_space(self) -> dict[str, Any]:
        """
        Get the space the access token belongs to.
        """
        body = self.get(CURRENT_SPACE_PATH)
        space = body.get("space")
        if not isinstance(space, dict):
            raise StoryblokAPIError(f"{CURRENT_SPACE_PATH} returned no space")
        return space

    def get_space_version(self) -> int:
        """
        Get the space's current cache version.

        Raises:
            StoryblokAPIError: If the version is missing or not a number
        """
        raw = self.get_space().get("version")
        if isinstance(raw, bool) or raw in (None, "", 0):
            raise StoryblokAPIError(
                "Invalid cache version received from Storyblok API."
            )
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise StoryblokAPIError(
                "Invalid cache version received from Storyblok API."
            ) from None
