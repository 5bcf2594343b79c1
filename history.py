import os
import time
from pathlib import Path
from typing import List, Optional

import pandas as pd

from import_client import ImportApiClient, ImportApiError
from models.schemas import ImportHistory, ImportRowError, ImportType
from utils.logging import get_logger, timer, timing_decorator
from utils.store import NoticeChannel

REPORT_COLUMNS = ["Fila", "Campo", "Mensaje", "Valor"]


class HistoryService:
    """Past imports, their error reports and server-side reversal."""

    def __init__(self, client: ImportApiClient, notices: NoticeChannel, download_dir: str = "./data/downloads"):
        self.client = client
        self.notices = notices
        self.download_dir = download_dir
        self.import_history: List[ImportHistory] = []
        self.total = 0
        self.is_loading = False

        self.logger = get_logger(__name__)

    def _ensure_folders(self) -> None:
        Path(self.download_dir).mkdir(parents=True, exist_ok=True)

    async def load_history(self, limit: Optional[int] = None, offset: Optional[int] = None) -> List[ImportHistory]:
        """Refresh the list; on any failure the previous list stays visible."""
        self.is_loading = True
        try:
            response = await self.client.history(limit=limit, offset=offset)
        except ImportApiError as e:
            self.logger.error(f"Error loading import history: {e.message}")
            return self.import_history
        finally:
            self.is_loading = False

        if response.success:
            self.import_history = response.data
            self.total = response.total
        else:
            self.logger.warning(f"Import history not returned: {response.message}")
        return self.import_history

    def find(self, import_id: str) -> Optional[ImportHistory]:
        return next((h for h in self.import_history if h.id == import_id), None)

    def download_error_report(self, import_id: str) -> Optional[str]:
        item = self.find(import_id)
        if item is None or not item.errors:
            self.logger.info(f"No error report available for import {import_id}")
            return None
        return self.generate_error_report(item.errors, item.file_name)

    @staticmethod
    def render_error_report(errors: List[ImportRowError]) -> str:
        rows = [
            [e.row, e.field, e.message, "" if e.value is None else e.value]
            for e in errors
        ]
        df = pd.DataFrame(rows, columns=REPORT_COLUMNS)
        return df.to_csv(index=False, lineterminator="\n")

    @timing_decorator
    def generate_error_report(self, errors: List[ImportRowError], file_name: str) -> str:
        """Write the row errors as errores_<file>_<millis>.csv and return its path."""
        self._ensure_folders()
        output_path = os.path.join(self.download_dir, f"errores_{file_name}_{int(time.time() * 1000)}.csv")

        with timer(f"Error report for {file_name}", level="DEBUG", logger_name=__name__):
            content = self.render_error_report(errors)
        with open(output_path, "w", encoding="utf-8", newline="") as f:
            f.write(content)

        self.logger.info(f"Saved error report with {len(errors)} rows to {output_path}")
        self.notices.info("Reporte de errores descargado")
        return output_path

    async def revert_import(self, import_id: str) -> bool:
        try:
            response = await self.client.revert(import_id)
        except ImportApiError as e:
            self.logger.error(f"Error reverting import {import_id}: {e.message}")
            self.notices.error(e.user_message("Error al revertir la importación"))
            return False

        if not response.success:
            self.notices.error(response.message or "Error al revertir la importación")
            return False

        if response.rows_reverted is not None:
            self.logger.info(f"Import {import_id} reverted, {response.rows_reverted} rows")
        self.notices.success(response.message or "Importación revertida")
        await self.load_history()
        return True

    async def download_template(self, import_type: ImportType) -> Optional[str]:
        """Save the server's empty CSV template for the given entity."""
        import_type = ImportType(import_type)
        try:
            content = await self.client.template(import_type)
        except ImportApiError as e:
            self.notices.error(e.user_message("Error al descargar la plantilla"))
            return None

        self._ensure_folders()
        output_path = os.path.join(self.download_dir, f"plantilla_{import_type.value}.csv")
        with open(output_path, "wb") as f:
            f.write(content)
        self.notices.info("Plantilla descargada")
        return output_path
