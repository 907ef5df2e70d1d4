import asyncio
import unittest
from datetime import datetime, timezone

from aiohttp import web
from aiohttp.test_utils import TestServer

from avatarlink import SessionTokenError, new_avatar_session, request_session_token
from avatarlink.session_token import SESSION_TOKEN_PATH, format_session_token_error

EXPIRE_AT = datetime.fromtimestamp(1754824283, tz=timezone.utc)


class _ConsoleStub:
    """Serves canned responses on the session token path and records requests."""

    def __init__(self, status: int = 200, body=None, text: str | None = None, delay: float = 0):
        self.status = status
        self.body = body if body is not None else {"sessionToken": "session-token-123"}
        self.text = text
        self.delay = delay
        self.requests: list[dict] = []

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append(
            {
                "method": request.method,
                "path": request.path,
                "headers": dict(request.headers),
                "json": await request.json(),
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.text is not None:
            return web.Response(status=self.status, text=self.text)
        return web.json_response(self.body, status=self.status)


class TestSessionToken(unittest.IsolatedAsyncioTestCase):
    async def _serve(self, stub: _ConsoleStub) -> str:
        app = web.Application()
        app.router.add_post(SESSION_TOKEN_PATH, stub.handle)
        server = TestServer(app)
        await server.start_server()
        self.addAsyncCleanup(server.close)
        return str(server.make_url("/"))

    async def test_init_success_stores_token(self):
        stub = _ConsoleStub()
        url = await self._serve(stub)
        session = new_avatar_session(
            api_key="api-key", expire_at=EXPIRE_AT, console_endpoint_url=url
        )

        await session.init()

        self.assertEqual(session._session_token, "session-token-123")
        self.assertEqual(len(stub.requests), 1)
        req = stub.requests[0]
        self.assertEqual(req["method"], "POST")
        self.assertEqual(req["path"], "/session-tokens")
        self.assertEqual(req["headers"]["X-Api-Key"], "api-key")
        self.assertTrue(req["headers"]["Content-Type"].startswith("application/json"))
        self.assertEqual(req["json"], {"expireAt": 1754824283})

    async def test_init_again_replaces_token(self):
        stub = _ConsoleStub()
        url = await self._serve(stub)
        session = new_avatar_session(
            api_key="api-key", expire_at=EXPIRE_AT, console_endpoint_url=url
        )

        await session.init()
        stub.body = {"sessionToken": "refreshed"}
        await session.init()

        self.assertEqual(session._session_token, "refreshed")
        self.assertEqual(len(stub.requests), 2)

    async def test_model_version_is_forwarded(self):
        stub = _ConsoleStub()
        url = await self._serve(stub)

        await request_session_token("api-key", url, EXPIRE_AT, model_version="v2")

        self.assertEqual(stub.requests[0]["json"], {"expireAt": 1754824283, "modelVersion": "v2"})

    async def test_service_errors_include_detail(self):
        stub = _ConsoleStub(
            body={
                "errors": [
                    {
                        "id": "INVALID_ARGUMENT",
                        "status": 401,
                        "code": "INVALID_ARGUMENT",
                        "title": "Invalid Argument",
                        "detail": "invalid api key",
                    },
                    {"detail": "ignored"},
                ]
            }
        )
        url = await self._serve(stub)
        session = new_avatar_session(
            api_key="bad-key", expire_at=EXPIRE_AT, console_endpoint_url=url
        )

        with self.assertRaises(SessionTokenError) as ctx:
            await session.init()

        self.assertEqual(
            str(ctx.exception),
            "Error 401 (INVALID_ARGUMENT): Invalid Argument - invalid api key",
        )
        self.assertIsNone(session._session_token)

    async def test_non_2xx_status_is_reported(self):
        stub = _ConsoleStub(status=503, text="upstream unavailable")
        url = await self._serve(stub)

        with self.assertRaises(SessionTokenError) as ctx:
            await request_session_token("api-key", url, EXPIRE_AT)

        self.assertEqual(ctx.exception.status, 503)
        self.assertIn("503", str(ctx.exception))

    async def test_non_2xx_status_with_error_entries(self):
        stub = _ConsoleStub(
            status=403,
            body={"errors": [{"status": 403, "code": "FORBIDDEN", "title": "Forbidden", "detail": "app disabled"}]},
        )
        url = await self._serve(stub)

        with self.assertRaisesRegex(SessionTokenError, "app disabled"):
            await request_session_token("api-key", url, EXPIRE_AT)

    async def test_undecodable_body(self):
        url = await self._serve(_ConsoleStub(text="<html>not json</html>"))

        with self.assertRaisesRegex(SessionTokenError, "Failed to decode response"):
            await request_session_token("api-key", url, EXPIRE_AT)

    async def test_empty_token(self):
        url = await self._serve(_ConsoleStub(body={"sessionToken": ""}))

        with self.assertRaisesRegex(SessionTokenError, "Empty session token"):
            await request_session_token("api-key", url, EXPIRE_AT)

    async def test_timeout(self):
        url = await self._serve(_ConsoleStub(delay=0.5))

        with self.assertRaisesRegex(SessionTokenError, "timed out"):
            await request_session_token("api-key", url, EXPIRE_AT, timeout=0.05)

    async def test_missing_config_fails_before_request(self):
        cases = [
            (dict(api_key="", console_endpoint_url="http://x", expire_at=EXPIRE_AT), "Missing API key"),
            (dict(api_key="k", console_endpoint_url="", expire_at=EXPIRE_AT), "Missing console endpoint URL"),
            (dict(api_key="k", console_endpoint_url="http://x", expire_at=None), "Missing expireAt"),
            (
                dict(
                    api_key="k",
                    console_endpoint_url="http://x",
                    expire_at=datetime.fromtimestamp(0, tz=timezone.utc),
                ),
                "Missing expireAt",
            ),
        ]
        for options, message in cases:
            with self.subTest(message=message):
                session = new_avatar_session(**options)
                with self.assertRaisesRegex(ValueError, message):
                    await session.init()


class TestFormatSessionTokenError(unittest.TestCase):
    def test_uses_first_entry(self):
        data = {"errors": [{"status": 400, "code": "BAD", "title": "Bad", "detail": "first"}, {"detail": "second"}]}
        self.assertEqual(format_session_token_error(200, data), "Error 400 (BAD): Bad - first")

    def test_defaults_missing_fields(self):
        self.assertEqual(
            format_session_token_error(500, {"errors": [{}]}),
            "Error 500 (unknown): Error - No details",
        )

    def test_no_entries(self):
        self.assertEqual(format_session_token_error(418, {}), "Unknown error with status 418")


if __name__ == "__main__":
    unittest.main()
