from __future__ import annotations

import json
import unittest

import httpx

from members.store import MemberRole
from misc.errors import ExternalServiceError
from wiki.client import WikiClient


def _client(handler, **kwargs) -> WikiClient:
    return WikiClient(
        url="https://wiki.example/graphql",
        token="t0ken",
        enabled=True,
        member_group_id=3,
        apprentice_group_id=4,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _ok(node_path: tuple[str, str], extra: dict | None = None) -> dict:
    node = {"responseResult": {"succeeded": True, "message": "ok"}}
    node.update(extra or {})
    return {"data": {node_path[0]: {node_path[1]: node}}}


class WikiClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_disabled_client_never_calls_out(self):
        def handler(request):
            raise AssertionError("no request expected")

        client = WikiClient(url="", token="", enabled=True, transport=httpx.MockTransport(handler))
        self.assertFalse(client.enabled)
        await client.assign_group(1, 3)
        await client.unassign_group(1, 3)
        self.assertIsNone(await client.find_or_create_user("a@example.org", "A"))

    async def test_assign_group_sends_variables_and_token(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request):
            seen.append(request)
            return httpx.Response(200, json=_ok(("groups", "assignUser")))

        await _client(handler).assign_group(17, 3)
        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0].headers["Authorization"], "Bearer t0ken")
        body = json.loads(seen[0].content)
        self.assertEqual(body["variables"], {"groupId": 3, "userId": 17})
        self.assertIn("assignUser", body["query"])

    async def test_unsuccessful_result_raises(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"data": {"groups": {"unassignUser": {"responseResult": {"succeeded": False, "message": "nope"}}}}},
            )

        with self.assertRaises(ExternalServiceError) as ctx:
            await _client(handler).unassign_group(17, 3)
        self.assertIn("nope", str(ctx.exception))

    async def test_http_and_graphql_errors_raise(self):
        def http_error(request):
            return httpx.Response(502, text="bad gateway")

        def gql_error(request):
            return httpx.Response(200, json={"errors": [{"message": "Forbidden"}]})

        with self.assertRaises(ExternalServiceError) as ctx:
            await _client(http_error).assign_group(1, 3)
        self.assertIn("502", str(ctx.exception))
        with self.assertRaises(ExternalServiceError) as ctx:
            await _client(gql_error).assign_group(1, 3)
        self.assertIn("Forbidden", str(ctx.exception))

    async def test_find_or_create_reuses_existing_account(self):
        def handler(request):
            body = json.loads(request.content)
            self.assertIn("search", body["query"])
            return httpx.Response(
                200,
                json={"data": {"users": {"search": [{"id": 5, "email": "Other@x"}, {"id": 9, "email": "A@Example.org"}]}}},
            )

        self.assertEqual(await _client(handler).find_or_create_user("a@example.org", "A"), 9)

    async def test_find_or_create_creates_with_group(self):
        calls: list[dict] = []

        def handler(request):
            body = json.loads(request.content)
            calls.append(body)
            if "search" in body["query"]:
                return httpx.Response(200, json={"data": {"users": {"search": []}}})
            return httpx.Response(200, json=_ok(("users", "create"), {"user": {"id": 42}}))

        client = _client(handler)
        wiki_id = await client.find_or_create_user("b@example.org", "B", client.group_for_role(MemberRole.APPRENTICE))
        self.assertEqual(wiki_id, 42)
        self.assertEqual(calls[1]["variables"], {"email": "b@example.org", "name": "B", "groups": [4]})

    def test_group_for_role(self):
        client = _client(lambda r: httpx.Response(200))
        self.assertEqual(client.group_for_role(MemberRole.MEMBER), 3)
        self.assertEqual(client.group_for_role(MemberRole.APPRENTICE), 4)
        self.assertIsNone(client.group_for_role(MemberRole.EX_MEMBER))


if __name__ == "__main__":
    unittest.main()
