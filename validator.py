from typing import Callable, Iterable, List, NamedTuple, Optional

import schema_registry
from import_client import ImportApiClient, ImportApiError
from models.schemas import CSVPreview, ImportType, SelectedFile, ValidateResponse
from utils.logging import get_logger
from utils.store import NoticeChannel

logger = get_logger(__name__)

PREFIX_LENGTH = 10
PREVIEW_FALLBACK_MESSAGE = "Error al cargar la vista previa"
PREVIEW_TRANSPORT_MESSAGE = "Error al cargar la vista previa del archivo"

# (normalized headers, normalized required column) -> matched?
MatchStrategy = Callable[[List[str], str], bool]


def normalize(name: str) -> str:
    return name.strip().lower()


def prefix_substring_match(headers: List[str], required: str) -> bool:
    """
    A required column counts as present when any header contains its first
    ten characters. CRM exports rename or cut long headers
    ("Número de la póliza (interno)", "Situación de la pól."), so the
    comparison only looks at the prefix.
    """
    prefix = required[:PREFIX_LENGTH]
    return any(prefix in header for header in headers)


def exact_match(headers: List[str], required: str) -> bool:
    return required in headers


class ColumnCheck(NamedTuple):
    valid: bool
    missing: Optional[str] = None


def validate_columns(headers: Iterable[str],
                     import_type: ImportType,
                     strategy: MatchStrategy = prefix_substring_match) -> ColumnCheck:
    """Check returned headers against the registry; reports the first missing column."""
    normalized = [normalize(h) for h in headers]
    for column in schema_registry.required_columns(import_type):
        if not strategy(normalized, normalize(column)):
            return ColumnCheck(False, column)
    return ColumnCheck(True)


class PreviewOutcome(NamedTuple):
    preview: Optional[CSVPreview]
    missing_column: Optional[str] = None
    error: Optional[str] = None


class PreviewValidator:
    """Asks the server for a preview of the file and vets its headers."""

    def __init__(self,
                 client: ImportApiClient,
                 notices: NoticeChannel,
                 strategy: MatchStrategy = prefix_substring_match):
        self.client = client
        self.notices = notices
        self.strategy = strategy

    async def load_preview(self, file: SelectedFile, import_type: ImportType) -> PreviewOutcome:
        try:
            response = await self.client.preview(file)
        except ImportApiError as e:
            logger.error(f"Preview of {file.name} failed: {e.message}")
            return PreviewOutcome(None, error=e.user_message(PREVIEW_TRANSPORT_MESSAGE))

        if not response.success or response.data is None:
            return PreviewOutcome(None, error=response.message or PREVIEW_FALLBACK_MESSAGE)

        preview = response.data
        check = validate_columns(preview.headers, import_type, self.strategy)
        if not check.valid:
            logger.info(f"{file.name} lacks required column {check.missing!r} for {import_type.value}")
            return PreviewOutcome(None, missing_column=check.missing)

        logger.info(f"Preview of {file.name}: {len(preview.headers)} columns, {preview.total_rows} rows")
        return PreviewOutcome(preview)

    def announce(self, outcome: PreviewOutcome, import_type: ImportType) -> None:
        if outcome.missing_column is not None:
            self.notices.error(
                f'El archivo no contiene la columna requerida: "{outcome.missing_column}"',
                duration_ms=5000,
            )
        elif outcome.error is not None:
            self.notices.error(outcome.error)
        else:
            title = schema_registry.describe(import_type).title
            self.notices.success(f"Archivo validado correctamente para {title}")

    async def validate_on_server(self, file: SelectedFile, import_type: ImportType) -> Optional[ValidateResponse]:
        """Full structural check done by the backend, without importing anything."""
        try:
            result = await self.client.validate(file, import_type)
        except ImportApiError as e:
            self.notices.error(e.user_message("Error al validar el archivo"))
            return None
        if not result.valid:
            logger.info(f"Server validation of {file.name}: {result.total_errors} errors")
        return result
