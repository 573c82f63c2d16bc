import logging
import threading
from typing import Any

import requests

from ..config import Config
from .request_builder import RemoteCall

logger = logging.getLogger(__name__)


class BoardClient:
    """Blocking REST client for the remote task board.

    Authentication is carried as ``key``/``token`` query parameters on a
    thread-local ``requests.Session`` so calls dispatched to worker
    threads never share a session.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.api_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """Accessor for the current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.params = {
            "key": self.config.api_key,
            "token": self.config.api_token,
        }
        session.verify = not self.config.insecure
        session.headers["Accept"] = "application/json"
        return session

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def execute(self, call: RemoteCall) -> Any:
        """
        Perform a formatted REST call and return the decoded JSON body.

        Args:
            call: Method, path and query parameters.

        Returns:
            Decoded JSON response, or None for an empty body.

        Raises:
            requests.HTTPError: On a non-2xx status.
            requests.RequestException: On connection or decoding failures.
        """
        logger.debug("%s %s %s", call.method, call.path, call.params)
        response = self._get_session().request(
            call.method,
            self._url(call.path),
            params=call.params,
            timeout=(10, 60),
        )
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    def validate_connection(self) -> str:
        """
        Validate credentials by fetching the authenticated member.
        Returns the member's username if successful.
        """
        response = self._get_session().get(
            self._url("/members/me"),
            params={"fields": "username"},
            timeout=(10, 60),
        )
        response.raise_for_status()
        data = response.json()
        return str(data.get("username", "")) if isinstance(data, dict) else ""
