"""
The CSV import wizard.

ImportWizard wires the intake, preview/validation, orchestration and
history components together and owns everything the UI reads: the
selected file, its preview, the followed import, the importing flag and
the current step. UI-facing events leave through three stores:

    notices   transient messages (success / error / info)
    progress  every ImportProgress received while polling
    step      the wizard step, published on each change
"""
import asyncio
from typing import List, Optional

import schema_registry
from config import Settings
from file_intake import FileIntake
from history import HistoryService
from import_client import ImportApiClient
from models.schemas import (
    CSVPreview,
    ImportConfig,
    ImportHistory,
    ImportProgress,
    ImportType,
    SelectedFile,
    ValidateResponse,
    WizardStep,
)
from orchestrator import ImportOrchestrator, PollBackoff
from utils.logging import get_logger
from utils.store import NoticeChannel, Store
from validator import MatchStrategy, PreviewValidator, prefix_substring_match

logger = get_logger(__name__)


def format_file_size(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    k = 1024
    sizes = ["Bytes", "KB", "MB", "GB"]
    i = 0
    while i < len(sizes) - 1 and size >= k ** (i + 1):
        i += 1
    value = round(size / k ** i * 100) / 100
    if value == int(value):
        value = int(value)
    return f"{value} {sizes[i]}"


class ImportWizard:
    def __init__(self,
                 settings: Optional[Settings] = None,
                 client: Optional[ImportApiClient] = None,
                 strategy: MatchStrategy = prefix_substring_match,
                 sleep=asyncio.sleep):
        self.settings = settings or Settings.from_env()
        self.client = client or ImportApiClient(
            self.settings.base_url,
            api_token=self.settings.api_token,
            timeout=self.settings.http_timeout,
        )

        self.notices = NoticeChannel()
        self.progress: Store[ImportProgress] = Store()
        self.step: Store[WizardStep] = Store(WizardStep.TYPE)

        self.intake = FileIntake(self.notices, max_file_size=self.settings.max_file_size)
        self.validator = PreviewValidator(self.client, self.notices, strategy=strategy)
        self.history = HistoryService(self.client, self.notices, download_dir=self.settings.download_dir)
        self.orchestrator = ImportOrchestrator(
            self.client,
            self.notices,
            progress=self.progress,
            backoff_factory=lambda: PollBackoff.from_settings(self.settings),
            sleep=sleep,
            on_terminal=self._on_import_finished,
        )

        self.import_config = ImportConfig()
        self.csv_preview: Optional[CSVPreview] = None
        self.is_loading_preview = False
        self._preview_task: Optional[asyncio.Task] = None

    # ===== STATE =====
    @property
    def selected_file(self) -> Optional[SelectedFile]:
        return self.intake.selected_file

    @property
    def current_import(self) -> Optional[ImportProgress]:
        return self.orchestrator.current_import

    @property
    def is_importing(self) -> bool:
        return self.orchestrator.is_importing

    @property
    def is_dragging(self) -> bool:
        return self.intake.is_dragging

    @property
    def current_step(self) -> WizardStep:
        return self.step.value

    @property
    def import_history(self) -> List[ImportHistory]:
        return self.history.import_history

    def _set_step(self, step: WizardStep) -> None:
        if step != self.step.value:
            self.step.publish(WizardStep(step))

    def go_to_step(self, step: int) -> None:
        """Only already visited steps can be revisited."""
        if step <= self.current_step:
            self._set_step(WizardStep(step))

    # ===== CONFIGURATION =====
    def select_import_type(self, import_type: ImportType) -> bool:
        if self.is_importing:
            self.notices.error("No se puede cambiar el tipo durante una importación")
            return False
        self.import_config.type = ImportType(import_type)
        return True

    def get_expected_file_name(self) -> str:
        if not self.import_config.type:
            return ""
        return schema_registry.expected_file_name(self.import_config.type)

    def get_required_columns(self) -> List[str]:
        if not self.import_config.type:
            return []
        return schema_registry.required_columns(self.import_config.type)

    # ===== FILE HANDLING =====
    def select_file(self, file: SelectedFile) -> Optional[asyncio.Task]:
        """
        Accept a picked or dropped file and start its preview.

        Returns the preview task, or None when the file was rejected (the
        previous selection is then left untouched). Must run inside the
        event loop.
        """
        logger.debug(f"File selected: {file.name} ({file.size} bytes)")
        if not self.intake.accept(file):
            return None

        self._cancel_preview()
        self.csv_preview = None
        self._preview_task = asyncio.create_task(self.load_preview(self.intake.generation))
        return self._preview_task

    def drag_over(self) -> None:
        self.intake.drag_over()

    def drag_leave(self) -> None:
        self.intake.drag_leave()

    def drop(self, file: Optional[SelectedFile]) -> Optional[asyncio.Task]:
        dropped = self.intake.drop(file)
        if dropped is None:
            return None
        return self.select_file(dropped)

    def process_pasted_csv(self, text: str) -> Optional[asyncio.Task]:
        file = self.intake.from_pasted_text(text)
        if file is None:
            return None
        return self.select_file(file)

    def remove_file(self) -> None:
        self._cancel_preview()
        self.intake.remove()
        self.csv_preview = None
        self._set_step(WizardStep.TYPE)

    # ===== PREVIEW =====
    async def load_preview(self, generation: Optional[int] = None) -> Optional[CSVPreview]:
        if generation is None:
            generation = self.intake.generation
        file = self.selected_file
        if file is None:
            return None
        import_type = self.import_config.type or ImportType.clientes

        self.is_loading_preview = True
        try:
            outcome = await self.validator.load_preview(file, import_type)
        finally:
            if self.intake.generation == generation:
                self.is_loading_preview = False

        if not self.intake.is_current(generation):
            logger.info(f"Dropping preview of {file.name}: selection changed meanwhile")
            return None

        if outcome.missing_column is not None:
            self.intake.remove()
            self.csv_preview = None
            self._set_step(WizardStep.UPLOAD)
        elif outcome.error is not None:
            self.csv_preview = None
        else:
            self.csv_preview = outcome.preview
            self._set_step(WizardStep.PREVIEW)

        self.validator.announce(outcome, import_type)
        return self.csv_preview

    async def validate_on_server(self) -> Optional[ValidateResponse]:
        if self.selected_file is None or not self.import_config.type:
            self.notices.error("Por favor, selecciona un archivo primero")
            return None
        return await self.validator.validate_on_server(self.selected_file, self.import_config.type)

    def _cancel_preview(self) -> None:
        task = self._preview_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._preview_task = None
        self.is_loading_preview = False

    # ===== IMPORT =====
    async def start_import(self) -> bool:
        if self.selected_file is not None and self.import_config.type:
            self._set_step(WizardStep.PREVIEW)
        return await self.orchestrator.start_import(self.selected_file, self.import_config)

    async def cancel_import(self) -> bool:
        return await self.orchestrator.cancel_import()

    async def wait_for_import(self) -> Optional[ImportProgress]:
        task = self.orchestrator.poll_task
        if task is None:
            return self.current_import
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled():
                return self.current_import
            raise

    async def _on_import_finished(self, progress: ImportProgress) -> None:
        self._set_step(WizardStep.RESULTS)
        await self.history.load_history()

    # ===== HISTORY =====
    async def load_history(self, limit: Optional[int] = None, offset: Optional[int] = None) -> List[ImportHistory]:
        return await self.history.load_history(limit=limit, offset=offset)

    def download_error_report(self, import_id: str) -> Optional[str]:
        return self.history.download_error_report(import_id)

    async def revert_import(self, import_id: str) -> bool:
        return await self.history.revert_import(import_id)

    async def download_template(self, import_type: Optional[ImportType] = None) -> Optional[str]:
        return await self.history.download_template(import_type or self.import_config.type or ImportType.clientes)

    # ===== LIFECYCLE =====
    def reset_import(self) -> None:
        self._cancel_preview()
        self.orchestrator.reset()
        self.intake.remove()
        self.intake.is_dragging = False
        self.csv_preview = None
        self._set_step(WizardStep.TYPE)

    async def close(self) -> None:
        self.reset_import()
        await self.client.close()
