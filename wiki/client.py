from __future__ import annotations

from typing import Any

import httpx

from members.store import MemberRole
from misc.errors import ExternalServiceError


ASSIGN_GROUP_MUTATION = """
mutation AssignUserGroup($groupId: Int!, $userId: Int!) {
  groups {
    assignUser(groupId: $groupId, userId: $userId) {
      responseResult { succeeded message }
    }
  }
}
"""

UNASSIGN_GROUP_MUTATION = """
mutation UnassignUserGroup($groupId: Int!, $userId: Int!) {
  groups {
    unassignUser(groupId: $groupId, userId: $userId) {
      responseResult { succeeded message }
    }
  }
}
"""

CREATE_USER_MUTATION = """
mutation CreateUser($email: String!, $name: String!, $groups: [Int]!) {
  users {
    create(email: $email, name: $name, passwordRaw: "", providerKey: "local",
           groups: $groups, mustChangePassword: true, sendWelcomeEmail: true) {
      responseResult { succeeded message }
      user { id }
    }
  }
}
"""

SEARCH_USER_QUERY = """
query SearchUser($query: String!) {
  users {
    search(query: $query) { id email }
  }
}
"""


class WikiClient:
    """GraphQL client for the wiki's user-group API.

    When `enabled` is false every call is a no-op, so member management works
    without a wiki configured.
    """

    def __init__(
        self,
        *,
        url: str,
        token: str,
        enabled: bool,
        member_group_id: int = 0,
        apprentice_group_id: int = 0,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        user_agent: str = "octobot",
    ) -> None:
        self.url = (url or "").strip()
        self.token = (token or "").strip()
        self.enabled = bool(enabled) and bool(self.url)
        self.member_group_id = int(member_group_id or 0)
        self.apprentice_group_id = int(apprentice_group_id or 0)
        self.timeout = float(timeout)
        self._transport = transport
        self._user_agent = user_agent

    def group_for_role(self, role) -> int | None:
        if role == MemberRole.MEMBER:
            return self.member_group_id or None
        if role == MemberRole.APPRENTICE:
            return self.apprentice_group_id or None
        return None

    def _client(self) -> httpx.AsyncClient:
        headers = {"User-Agent": self._user_agent}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers=headers,
            transport=self._transport,
        )

    async def _execute(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            async with self._client() as client:
                res = await client.post(self.url, json={"query": query, "variables": variables})
                res.raise_for_status()
                body = res.json()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError("wiki", f"HTTP {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            raise ExternalServiceError("wiki", str(e) or type(e).__name__) from e

        errors = body.get("errors") if isinstance(body, dict) else None
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else {}
            raise ExternalServiceError("wiki", str(first.get("message") or errors))
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise ExternalServiceError("wiki", "response has no data")
        return data

    @staticmethod
    def _check_result(node: Any) -> dict[str, Any]:
        if not isinstance(node, dict):
            raise ExternalServiceError("wiki", "malformed response")
        result = node.get("responseResult") or {}
        if not result.get("succeeded"):
            raise ExternalServiceError("wiki", str(result.get("message") or "operation failed"))
        return node

    async def assign_group(self, wiki_user_id: int, group_id: int) -> None:
        if not self.enabled:
            return
        data = await self._execute(ASSIGN_GROUP_MUTATION, {"groupId": int(group_id), "userId": int(wiki_user_id)})
        self._check_result((data.get("groups") or {}).get("assignUser"))
        print(f"[Wiki] assigned user={wiki_user_id} to group={group_id}")

    async def unassign_group(self, wiki_user_id: int, group_id: int) -> None:
        if not self.enabled:
            return
        data = await self._execute(UNASSIGN_GROUP_MUTATION, {"groupId": int(group_id), "userId": int(wiki_user_id)})
        self._check_result((data.get("groups") or {}).get("unassignUser"))
        print(f"[Wiki] unassigned user={wiki_user_id} from group={group_id}")

    async def _find_user(self, email: str) -> int | None:
        data = await self._execute(SEARCH_USER_QUERY, {"query": email})
        hits = (data.get("users") or {}).get("search") or []
        for hit in hits:
            if str(hit.get("email") or "").strip().lower() == email.strip().lower():
                return int(hit["id"])
        return None

    async def find_or_create_user(self, email: str, name: str, group_id: int | None = None) -> int | None:
        if not self.enabled:
            return None
        existing = await self._find_user(email)
        if existing is not None:
            return existing
        groups = [int(group_id)] if group_id else []
        data = await self._execute(CREATE_USER_MUTATION, {"email": email, "name": name, "groups": groups})
        node = self._check_result((data.get("users") or {}).get("create"))
        user = node.get("user") or {}
        if user.get("id") is not None:
            print(f"[Wiki] created user id={user['id']} for {email}")
            return int(user["id"])
        return await self._find_user(email)
