import os
import sys
import unittest
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx

import schema_registry
from fake_server import FakeImportServer, preview_payload
from import_client import ImportApiClient
from models.schemas import ImportType, NoticeLevel, SelectedFile
from utils.store import NoticeChannel
from validator import (
    PreviewValidator,
    exact_match,
    prefix_substring_match,
    validate_columns,
)


class TestValidateColumns(unittest.TestCase):

    def test_accepts_all_types_regardless_of_case_and_spaces(self):
        for import_type in ImportType:
            headers = [f"  {c.upper()}  " for c in schema_registry.required_columns(import_type)]
            self.assertTrue(validate_columns(headers, import_type).valid, import_type)

    def test_rejects_any_missing_column(self):
        for import_type in ImportType:
            required = schema_registry.required_columns(import_type)
            for missing in required:
                headers = [c for c in required if c != missing]
                check = validate_columns(headers, import_type)
                # columns sharing a 10-char prefix can cover each other
                prefix = missing.lower()[:10]
                if any(prefix in h.lower() for h in headers):
                    continue
                self.assertFalse(check.valid)
                self.assertEqual(check.missing, missing)

    def test_reports_first_missing_column(self):
        check = validate_columns(["nif", "idaccount"], ImportType.clientes)
        self.assertEqual(check.missing, "Nombre completo")

    def test_prefix_tolerates_renamed_and_truncated_headers(self):
        headers = [
            "Número de la pól.",
            "Ramo / producto",
            "Nombre del cliente titular",
            "IdAccount",
            "Situación de la",
        ]
        self.assertTrue(validate_columns(headers, ImportType.polizas).valid)

    def test_prefix_is_only_ten_characters(self):
        self.assertTrue(prefix_substring_match(["email cont"], "email contacto"))
        self.assertFalse(prefix_substring_match(["email con"], "email contacto"))

    def test_strategy_can_be_swapped(self):
        headers = ["NIF", "Nombre completo (titular)", "IdAccount", "Email contacto", "Provincia"]
        self.assertTrue(validate_columns(headers, ImportType.clientes).valid)
        check = validate_columns(headers, ImportType.clientes, strategy=exact_match)
        self.assertFalse(check.valid)
        self.assertEqual(check.missing, "Nombre completo")


class TestPreviewValidator(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.server = FakeImportServer()
        self.client = ImportApiClient("http://crm.test", transport=self.server.transport)
        self.notices = NoticeChannel()
        self.received = []
        self.notices.subscribe(self.received.append)
        self.validator = PreviewValidator(self.client, self.notices)
        self.file = SelectedFile(name="clientes.csv", content=b"NIF;Nombre completo\n")

    async def asyncTearDown(self):
        await self.client.close()

    async def test_preview_is_posted_as_multipart(self):
        outcome = await self.validator.load_preview(self.file, ImportType.clientes)

        self.assertIsNotNone(outcome.preview)
        request = self.server.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/api/admin/import/preview")
        self.assertIn(b'name="file"; filename="clientes.csv"', request.content)

    async def test_missing_column_outcome(self):
        self.server.preview = preview_payload(headers=["NIF", "Nombre completo"])

        outcome = await self.validator.load_preview(self.file, ImportType.clientes)
        self.validator.announce(outcome, ImportType.clientes)

        self.assertIsNone(outcome.preview)
        self.assertEqual(outcome.missing_column, "IdAccount")
        self.assertEqual(self.received[-1].level, NoticeLevel.error)
        self.assertIn('"IdAccount"', self.received[-1].message)

    async def test_server_refusal_uses_server_message(self):
        self.server.preview = {"success": False, "message": "CSV vacío"}

        outcome = await self.validator.load_preview(self.file, ImportType.clientes)

        self.assertIsNone(outcome.preview)
        self.assertEqual(outcome.error, "CSV vacío")

    async def test_transport_error_uses_fallback(self):
        self.server.preview = httpx.ConnectError("connection refused")

        outcome = await self.validator.load_preview(self.file, ImportType.clientes)

        self.assertEqual(outcome.error, "Error al cargar la vista previa del archivo")

    async def test_http_error_body_message_is_extracted(self):
        self.server.preview = (400, {"error": "No se proporcionó archivo CSV"})

        outcome = await self.validator.load_preview(self.file, ImportType.clientes)

        self.assertEqual(outcome.error, "No se proporcionó archivo CSV")

    async def test_success_notice_names_type_title(self):
        outcome = await self.validator.load_preview(self.file, ImportType.clientes)
        self.validator.announce(outcome, ImportType.clientes)

        self.assertEqual(self.received[-1].level, NoticeLevel.success)
        self.assertEqual(self.received[-1].message, "Archivo validado correctamente para Clientes")

    async def test_validate_on_server(self):
        self.server.validate = {
            "valid": False,
            "errors": [{"row": 0, "field": "nif", "message": "Columna requerida no encontrada: nif"}],
            "total_errors": 1,
        }

        result = await self.validator.validate_on_server(self.file, ImportType.clientes)

        self.assertFalse(result.valid)
        self.assertEqual(result.errors[0].field, "nif")
        self.assertIn(b'name="type"', self.server.requests[0].content)


if __name__ == "__main__":
    unittest.main()
