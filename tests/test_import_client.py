import os
import sys
import unittest
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx

from fake_server import FakeImportServer, progress_payload
from import_client import INVALID_RESPONSE_MESSAGE, ImportApiClient, ImportApiError
from models.schemas import ImportStatus


class TestImportApiClient(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.server = FakeImportServer()
        self.client = ImportApiClient("http://crm.test", api_token="secret", transport=self.server.transport)

    async def asyncTearDown(self):
        await self.client.close()

    async def test_status_is_parsed(self):
        self.server.status_replies[0] = progress_payload("processing", progress=40)

        response = await self.client.status("imp-1")

        self.assertEqual(response.data.status, ImportStatus.processing)
        self.assertEqual(response.data.stats.processed_rows, 5)
        self.assertEqual(self.server.requests[0].headers["Authorization"], "Bearer secret")

    async def test_body_not_matching_the_envelope(self):
        replies = [
            {"success": True, "data": {"status": "pending"}},
            {"success": True, "data": {"id": "imp-1", "status": "queued"}},
            {"success": True, "data": {"id": "imp-1", "status": "processing", "progress": 140}},
        ]
        for reply in replies:
            self.server.status_replies[0] = reply
            with self.assertRaises(ImportApiError) as ctx:
                await self.client.status("imp-1")
            self.assertEqual(ctx.exception.message, INVALID_RESPONSE_MESSAGE)
            self.assertEqual(ctx.exception.status_code, 200)
            self.assertIsNone(ctx.exception.server_message)

    async def test_body_that_is_not_json(self):
        self.server.history = httpx.Response(200, text="<html>proxy</html>")

        with self.assertRaises(ImportApiError) as ctx:
            await self.client.history()

        self.assertEqual(ctx.exception.message, INVALID_RESPONSE_MESSAGE)

    async def test_error_status_uses_server_message(self):
        self.server.cancel = (409, {"error": "La importación ya ha terminado"})

        with self.assertRaises(ImportApiError) as ctx:
            await self.client.cancel("imp-1")

        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(ctx.exception.user_message("fallback"), "La importación ya ha terminado")

    async def test_transport_error(self):
        self.server.revert = httpx.ConnectError("connection refused")

        with self.assertRaises(ImportApiError) as ctx:
            await self.client.revert("imp-1")

        self.assertIsNone(ctx.exception.status_code)
        self.assertEqual(ctx.exception.user_message("fallback"), "fallback")


if __name__ == "__main__":
    unittest.main()
