import enum
import time
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for payloads exchanged with the import API (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ──────────────────────────────────────────────
# ENUM DEFINITIONS
# ──────────────────────────────────────────────
class ImportType(str, enum.Enum):
    clientes = "clientes"
    polizas = "polizas"
    recibos = "recibos"
    siniestros = "siniestros"


class ImportMode(str, enum.Enum):
    add = "add"
    replace = "replace"


class DuplicateHandling(str, enum.Enum):
    skip = "skip"
    update = "update"
    error = "error"


class ImportStatus(str, enum.Enum):
    pending = "pending"
    validating = "validating"
    processing = "processing"
    completed = "completed"
    error = "error"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset({ImportStatus.completed, ImportStatus.error, ImportStatus.cancelled})


class WizardStep(enum.IntEnum):
    TYPE = 0
    UPLOAD = 1
    CONFIG = 2
    PREVIEW = 3
    RESULTS = 4


class NoticeLevel(str, enum.Enum):
    success = "success"
    error = "error"
    info = "info"


# ──────────────────────────────────────────────
# IMPORT PAYLOADS
# ──────────────────────────────────────────────
class ImportConfig(WireModel):
    model_config = ConfigDict(validate_assignment=True)

    type: Optional[ImportType] = ImportType.clientes
    mode: ImportMode = ImportMode.add
    validate_before_import: bool = True
    handle_duplicates: DuplicateHandling = DuplicateHandling.skip

    def to_form_value(self) -> str:
        return self.model_dump_json(by_alias=True)


class CSVPreview(WireModel):
    model_config = ConfigDict(frozen=True)

    headers: List[str]
    rows: List[List[Any]] = []
    total_rows: int = 0
    file_size: int = 0
    file_name: str = ""


class ImportStats(WireModel):
    total_rows: int = 0
    processed_rows: int = 0
    successful_rows: int = 0
    error_rows: int = 0
    duplicate_rows: int = 0
    skipped_rows: int = 0


class ImportRowError(WireModel):
    """One rejected cell/row reported by the server (row numbers are 1-based)."""
    model_config = ConfigDict(frozen=True)

    row: int
    field: str = ""
    message: str
    value: Optional[Any] = None


class ImportProgress(WireModel):
    id: str
    status: ImportStatus = ImportStatus.pending
    stats: ImportStats = Field(default_factory=ImportStats)
    errors: List[ImportRowError] = []
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    progress: float = Field(default=0, ge=0, le=100)
    message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ImportHistory(WireModel):
    id: str
    type: ImportType
    file_name: str
    file_size: int = 0
    status: ImportStatus
    stats: ImportStats = Field(default_factory=ImportStats)
    user_name: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    errors: Optional[List[ImportRowError]] = None
    can_revert: bool = False


# ──────────────────────────────────────────────
# RESPONSE ENVELOPES
# ──────────────────────────────────────────────
class PreviewResponse(WireModel):
    success: bool
    data: Optional[CSVPreview] = None
    message: Optional[str] = None


class ImportResponse(WireModel):
    success: bool
    data: Optional[ImportProgress] = None
    message: Optional[str] = None


class CancelResponse(WireModel):
    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None


class ImportHistoryResponse(WireModel):
    success: bool
    data: List[ImportHistory] = []
    total: int = 0
    message: Optional[str] = None


class RevertResponse(WireModel):
    success: bool
    message: str = ""
    rows_reverted: Optional[int] = None


class ValidateResponse(BaseModel):
    valid: bool
    errors: List[ImportRowError] = []
    total_errors: int = 0


# ──────────────────────────────────────────────
# CLIENT-SIDE STATE
# ──────────────────────────────────────────────
class SelectedFile(BaseModel):
    """A file picked, dropped or pasted into the wizard."""
    model_config = ConfigDict(frozen=True)

    name: str
    content: bytes
    content_type: str = "text/csv"

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path) -> "SelectedFile":
        path = Path(path)
        return cls(name=path.name, content=path.read_bytes())

    @classmethod
    def from_text(cls, text: str, name: Optional[str] = None) -> "SelectedFile":
        if name is None:
            name = f"pegado_{int(time.time() * 1000)}.csv"
        return cls(name=name, content=text.encode("utf-8"))


class Notice(BaseModel):
    """Transient message for the user (the toast of the web UI)."""
    level: NoticeLevel
    message: str
    duration_ms: int = 3000
