import asyncio
from typing import Awaitable, Callable, Optional

from config import Settings
from import_client import ImportApiClient, ImportApiError
from models.schemas import ImportConfig, ImportProgress, ImportStatus, SelectedFile
from utils.logging import get_logger
from utils.store import NoticeChannel, Store

logger = get_logger(__name__)


class PollBackoff:
    """
    Delay between status polls: flat for the first `grace` polls, then
    multiplied by `factor` on every poll, never above `max_ms`.
    """

    def __init__(self, initial_ms: float = 1000, max_ms: float = 30000, factor: float = 1.5, grace: int = 5):
        self.interval_ms = initial_ms
        self.max_ms = max_ms
        self.factor = factor
        self.grace = grace
        self.count = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollBackoff":
        return cls(settings.poll_initial_ms, settings.poll_max_ms, settings.poll_backoff, settings.poll_grace)

    def next_delay_ms(self) -> float:
        self.count += 1
        if self.count > self.grace:
            self.interval_ms = min(self.interval_ms * self.factor, self.max_ms)
        return self.interval_ms


class ImportOrchestrator:
    """
    Starts a server-side import job and follows it until it ends.

    Only one job is followed at a time. Polls are strictly sequential: the
    next status request is scheduled only once the previous answer has been
    handled. Stopping the poll loop never implies the server stopped the job.
    """

    def __init__(self,
                 client: ImportApiClient,
                 notices: NoticeChannel,
                 progress: Optional[Store[ImportProgress]] = None,
                 backoff_factory: Callable[[], PollBackoff] = PollBackoff,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 on_terminal: Optional[Callable[[ImportProgress], Awaitable[None]]] = None):
        self.client = client
        self.notices = notices
        self.progress = progress if progress is not None else Store()
        self.backoff_factory = backoff_factory
        self._sleep = sleep
        self.on_terminal = on_terminal

        self.current_import: Optional[ImportProgress] = None
        self.is_importing = False
        self.poll_task: Optional[asyncio.Task] = None
        # bumped by reset(); a start answered after a reset is discarded
        self._session = 0

    async def start_import(self, file: Optional[SelectedFile], config: ImportConfig) -> bool:
        if file is None:
            self.notices.error("Por favor, selecciona un archivo primero")
            return False
        if not config.type:
            self.notices.error("Por favor, selecciona el tipo de importación")
            return False
        if self.is_importing:
            self.notices.error("Ya hay una importación en curso")
            return False

        submitted = config.model_copy(deep=True)
        session = self._session
        self.is_importing = True
        logger.info(f"Starting {submitted.type.value} import of {file.name} ({file.size} bytes)")

        try:
            response = await self.client.start(file, submitted)
        except ImportApiError as e:
            if session != self._session:
                logger.info(f"Dropping failed start of {file.name}: wizard was reset meanwhile")
                return False
            self.is_importing = False
            self.notices.error(e.user_message("Error al iniciar la importación"))
            return False

        if session != self._session:
            job = response.data.id if response.data is not None else "unknown"
            logger.warning(f"Start of {file.name} answered after a reset, not following job {job}")
            return False

        if not response.success or response.data is None:
            self.is_importing = False
            self.notices.error(response.message or "Error al iniciar la importación")
            return False

        self._update(response.data)
        self.notices.info("Importación iniciada")
        self.poll_task = asyncio.create_task(self.poll_import_status(response.data.id))
        return True

    async def poll_import_status(self, import_id: str) -> Optional[ImportProgress]:
        """Follow the job until a terminal status or a failed poll."""
        backoff = self.backoff_factory()
        while True:
            try:
                response = await self.client.status(import_id)
            except ImportApiError as e:
                # the job may well still be running on the server
                logger.error(f"Polling {import_id} failed, giving up: {e.message}")
                self._stop_following()
                self.notices.error("Error al consultar el estado de la importación")
                return None

            if not response.success or response.data is None:
                logger.error(f"Status of {import_id} not available: {response.message}")
                self._stop_following()
                self.notices.error(response.message or "Error al consultar el estado de la importación")
                return None

            progress = response.data
            self._update(progress)
            logger.debug(f"Import {import_id}: {progress.status.value} {progress.progress}%")

            if progress.is_terminal:
                self._stop_following()
                logger.info(f"Import {import_id} finished as {progress.status.value}")
                if progress.status == ImportStatus.completed:
                    self.notices.success("Importación completada exitosamente")
                if self.on_terminal is not None:
                    await self.on_terminal(progress)
                return progress

            await self._sleep(backoff.next_delay_ms() / 1000)

    async def cancel_import(self, import_id: Optional[str] = None) -> bool:
        if import_id is None:
            if self.current_import is None:
                return False
            import_id = self.current_import.id

        try:
            response = await self.client.cancel(import_id)
        except ImportApiError as e:
            self.notices.error(e.user_message("Error al cancelar la importación"))
            return False

        if not response.success:
            # polling keeps going until the server ends the job itself
            self.notices.error(response.message or "Error al cancelar la importación")
            return False

        self.notices.info("Importación cancelada")
        self.stop_polling()
        return True

    def stop_polling(self) -> None:
        task = self.poll_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._stop_following()

    def reset(self) -> None:
        self._session += 1
        self.stop_polling()
        self.poll_task = None
        self.current_import = None
        self.progress.reset()

    def _stop_following(self) -> None:
        self.is_importing = False

    def _update(self, progress: ImportProgress) -> None:
        self.current_import = progress
        self.progress.publish(progress)
