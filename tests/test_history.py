import os
import re
import sys
import tempfile
import unittest
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx

from fake_server import FakeImportServer, history_payload
from history import HistoryService
from import_client import ImportApiClient
from models.schemas import ImportRowError, ImportType, NoticeLevel
from utils.store import NoticeChannel


class TestErrorReport(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.notices = NoticeChannel()
        self.received = []
        self.notices.subscribe(self.received.append)
        self.service = HistoryService(client=None, notices=self.notices, download_dir=self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_single_error_report(self):
        errors = [ImportRowError(row=2, field="NIF", message="Formato inválido", value="123")]

        path = self.service.generate_error_report(errors, "clientes.csv")

        self.assertRegex(os.path.basename(path), r"^errores_clientes\.csv_\d{13}\.csv$")
        with open(path, encoding="utf-8", newline="") as f:
            self.assertEqual(f.read(), "Fila,Campo,Mensaje,Valor\n2,NIF,Formato inválido,123\n")
        self.assertEqual(self.received[-1].message, "Reporte de errores descargado")

    def test_missing_value_is_blank(self):
        errors = [
            ImportRowError(row=3, field="Email contacto", message="Campo obligatorio"),
            ImportRowError(row=7, field="Provincia", message="Desconocida", value="Marte"),
        ]

        content = HistoryService.render_error_report(errors)

        self.assertEqual(
            content,
            "Fila,Campo,Mensaje,Valor\n3,Email contacto,Campo obligatorio,\n7,Provincia,Desconocida,Marte\n",
        )

    def test_empty_report_has_header_only(self):
        self.assertEqual(HistoryService.render_error_report([]), "Fila,Campo,Mensaje,Valor\n")


class TestHistoryService(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.server = FakeImportServer()
        self.client = ImportApiClient("http://crm.test", transport=self.server.transport)
        self.notices = NoticeChannel()
        self.received = []
        self.notices.subscribe(self.received.append)
        self.service = HistoryService(self.client, self.notices, download_dir=self.tmp.name)

    async def asyncTearDown(self):
        await self.client.close()
        self.tmp.cleanup()

    async def test_load_history(self):
        items = await self.service.load_history(limit=20, offset=40)

        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].type, ImportType.clientes)
        self.assertTrue(items[0].can_revert)
        self.assertEqual(self.service.total, 1)
        request = self.server.requests[0]
        self.assertEqual(request.url.params["limit"], "20")
        self.assertEqual(request.url.params["offset"], "40")

    async def test_default_query_has_no_params(self):
        await self.service.load_history()
        self.assertEqual(str(self.server.requests[0].url.query, "ascii"), "")

    async def test_failed_refresh_keeps_previous_list(self):
        await self.service.load_history()
        self.server.history = httpx.ConnectError("connection refused")

        items = await self.service.load_history()

        self.assertEqual([h.id for h in items], ["imp-1"])
        self.assertFalse(self.service.is_loading)

    async def test_refused_refresh_keeps_previous_list(self):
        await self.service.load_history()
        self.server.history = {"success": False, "message": "Sin permisos"}

        items = await self.service.load_history()

        self.assertEqual([h.id for h in items], ["imp-1"])

    async def test_download_error_report_from_history(self):
        await self.service.load_history()

        path = self.service.download_error_report("imp-1")

        with open(path, encoding="utf-8") as f:
            self.assertIn("2,NIF,Formato inválido,123", f.read())
        # purely local
        self.assertEqual(len(self.server.requests), 1)

    async def test_no_report_without_errors(self):
        item = history_payload()["data"][0]
        item["errors"] = None
        self.server.history = history_payload([item])
        await self.service.load_history()

        self.assertIsNone(self.service.download_error_report("imp-1"))
        self.assertIsNone(self.service.download_error_report("unknown"))
        self.assertEqual(os.listdir(self.tmp.name), [])

    async def test_revert_success_refreshes_history(self):
        reverted = await self.service.revert_import("imp-1")

        self.assertTrue(reverted)
        self.assertEqual(self.server.paths(), ["/api/admin/import/revert/imp-1", "/api/admin/import/history"])
        self.assertEqual(self.received[-1].level, NoticeLevel.success)
        self.assertEqual(self.received[-1].message, "Importación revertida exitosamente")

    async def test_revert_refused(self):
        self.server.revert = {"success": False, "message": "Solo se pueden revertir importaciones completadas"}

        reverted = await self.service.revert_import("imp-1")

        self.assertFalse(reverted)
        self.assertEqual(self.received[-1].level, NoticeLevel.error)
        self.assertEqual(self.received[-1].message, "Solo se pueden revertir importaciones completadas")
        self.assertEqual(self.server.paths("/history"), [])

    async def test_revert_http_error_uses_body(self):
        self.server.revert = (400, {"error": "Solo se pueden revertir importaciones completadas"})

        self.assertFalse(await self.service.revert_import("imp-1"))
        self.assertEqual(self.received[-1].message, "Solo se pueden revertir importaciones completadas")

    async def test_revert_transport_error(self):
        self.server.revert = httpx.ConnectError("connection refused")

        self.assertFalse(await self.service.revert_import("imp-1"))
        self.assertEqual(self.received[-1].message, "Error al revertir la importación")

    async def test_download_template(self):
        path = await self.service.download_template(ImportType.recibos)

        self.assertTrue(re.search(r"plantilla_recibos\.csv$", path))
        self.assertEqual(self.server.requests[0].url.params["type"], "recibos")
        with open(path, encoding="utf-8") as f:
            self.assertEqual(f.read(), self.server.template)


if __name__ == "__main__":
    unittest.main()
