"""
Jira REST client.

Talks to the Jira REST API v2 with requests. The client performs single
attempts only; retry, circuit breaking and degradation are the invoker's
job. HTTP failures are raised as RemoteError subclasses classified by
status code.
"""

import json
import logging
import time
from typing import Any, Dict, List, Optional

import requests

from ..core.exceptions import PermanentRemoteError, TransientRemoteError
from ..core.remote_client import RemoteClient
from ..resilience.classify import error_for_status


logger = logging.getLogger(__name__)


API_PREFIX = "/rest/api/2"


def _flatten_value(value: Any) -> Any:
    """Reduce Jira's nested field objects to plain values."""
    if isinstance(value, dict):
        for key in ("name", "displayName", "value"):
            if key in value:
                return value[key]
        return value
    if isinstance(value, list):
        return [_flatten_value(v) for v in value]
    return value


class JiraRestClient(RemoteClient):
    """
    Remote client for Jira Cloud / Server.

    Supports:
    - Basic auth with email + API token
    - Rate limiting between requests
    - Status changes through workflow transitions (exact, then partial match)

    Args:
        base_url: Jira site URL (e.g. https://example.atlassian.net)
        email: Account email for basic auth
        api_token: API token for basic auth
        timeout: Request timeout in seconds
        rate_limit_delay: Minimum seconds between requests
        user_agent: Custom User-Agent header
        session: Pre-configured requests session (tests inject a mock)
    """

    def __init__(
        self,
        base_url: str,
        email: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: float = 30,
        rate_limit_delay: float = 0.0,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.rate_limit_delay = rate_limit_delay
        self.last_request_time = 0.0
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": user_agent or "tracksync/0.1",
        })
        if email and api_token:
            self.session.auth = (email, api_token)

    def _wait_for_rate_limit(self) -> None:
        """Enforce rate limiting between requests."""
        if self.rate_limit_delay > 0:
            elapsed = time.time() - self.last_request_time
            if elapsed < self.rate_limit_delay:
                time.sleep(self.rate_limit_delay - elapsed)
        self.last_request_time = time.time()

    def _request(
        self,
        method: str,
        path: str,
        entity_id: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        self._wait_for_rate_limit()
        url = f"{self.base_url}{API_PREFIX}{path}"
        start_time = time.time()
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise TransientRemoteError(f"Request to {url} timed out: {e}")
        except requests.ConnectionError as e:
            raise TransientRemoteError(f"Connection to {url} failed: {e}")

        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"{method} {url} -> {response.status_code} ({duration_ms}ms)")

        if response.status_code >= 400:
            raise error_for_status(
                response.status_code, self._error_detail(response), entity_id=entity_id,
            )
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except (json.JSONDecodeError, ValueError):
            raise PermanentRemoteError(
                f"Invalid JSON in response from {url}", status_code=response.status_code,
            )

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            body = response.json()
        except (json.JSONDecodeError, ValueError):
            return (response.text or "")[:200]
        messages = list(body.get("errorMessages") or [])
        messages.extend(f"{k}: {v}" for k, v in (body.get("errors") or {}).items())
        return "; ".join(messages)

    def fetch(self, entity_id: str) -> Dict[str, Any]:
        data = self._request("GET", f"/issue/{entity_id}", entity_id=entity_id)
        fields = (data or {}).get("fields") or {}
        return {name: _flatten_value(value) for name, value in fields.items()}

    def apply(self, entity_id: str, field_updates: Dict[str, Any]) -> Dict[str, Any]:
        updates = dict(field_updates)
        target_status = updates.pop("status", None)
        ack: Dict[str, Any] = {"id": entity_id, "updated_fields": sorted(updates)}

        if updates:
            payload_fields = {}
            for name, value in updates.items():
                if name == "assignee":
                    payload_fields[name] = {"name": value} if value else None
                else:
                    payload_fields[name] = value
            self._request(
                "PUT", f"/issue/{entity_id}",
                entity_id=entity_id, json={"fields": payload_fields},
            )

        if target_status is not None:
            transition_id = self.find_transition_id(entity_id, target_status)
            if transition_id is None:
                raise PermanentRemoteError(
                    f"No transition to '{target_status}' available for {entity_id}",
                    status_code=400,
                )
            self._request(
                "POST", f"/issue/{entity_id}/transitions",
                entity_id=entity_id, json={"transition": {"id": transition_id}},
            )
            ack["transition"] = target_status
            logger.info(f"Transitioned {entity_id} to '{target_status}'")

        return ack

    def _get_transitions(self, entity_id: str) -> List[Dict[str, Any]]:
        data = self._request("GET", f"/issue/{entity_id}/transitions", entity_id=entity_id)
        return list((data or {}).get("transitions") or [])

    def list_transitions(self, entity_id: str) -> List[str]:
        names = []
        for transition in self._get_transitions(entity_id):
            target = (transition.get("to") or {}).get("name") or transition.get("name")
            if target:
                names.append(target)
        return names

    def find_transition_id(self, entity_id: str, target_status: str) -> Optional[str]:
        """
        Find the transition leading to a status.

        Tries an exact (case-insensitive) match on the target status or the
        transition name first, then a partial match.
        """
        transitions = self._get_transitions(entity_id)
        wanted = target_status.casefold()

        def names(transition: Dict[str, Any]) -> List[str]:
            return [
                n.casefold() for n in (
                    (transition.get("to") or {}).get("name"),
                    transition.get("name"),
                ) if n
            ]

        for transition in transitions:
            if wanted in names(transition):
                return str(transition["id"])
        for transition in transitions:
            if any(wanted in n or n in wanted for n in names(transition)):
                return str(transition["id"])
        return None

    def get_name(self) -> str:
        return f"jira:{self.base_url}"

    def close(self) -> None:
        """Close the session."""
        if self.session:
            self.session.close()
