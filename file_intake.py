from typing import Optional

from config import MAX_FILE_SIZE
from models.schemas import SelectedFile
from utils.logging import get_logger
from utils.store import NoticeChannel

INVALID_TYPE_MESSAGE = "Por favor, selecciona un archivo CSV válido"
TOO_LARGE_MESSAGE = "El archivo es demasiado grande. Máximo 100MB"
EMPTY_PASTE_MESSAGE = "No hay contenido CSV para procesar"


class FileIntake:
    """
    Holds the single file currently selected in the wizard.

    Every change of selection bumps `generation`, which lets the preview
    step recognise answers that belong to a file the user already replaced.
    """

    def __init__(self, notices: NoticeChannel, max_file_size: int = MAX_FILE_SIZE):
        self.notices = notices
        self.max_file_size = max_file_size
        self.selected_file: Optional[SelectedFile] = None
        self.generation = 0
        self.is_dragging = False

        # Initialize logger for this class
        self.logger = get_logger(__name__)

    def check(self, file: SelectedFile) -> bool:
        """Extension and size gates; never touches the current selection."""
        # case-sensitive on purpose, DATA.CSV is rejected
        if not file.name.endswith(".csv"):
            self.logger.info(f"Rejected {file.name}: not a .csv file")
            self.notices.error(INVALID_TYPE_MESSAGE)
            return False

        if file.size > self.max_file_size:
            self.logger.info(f"Rejected {file.name}: {file.size} bytes exceeds {self.max_file_size}")
            self.notices.error(TOO_LARGE_MESSAGE)
            return False

        return True

    def accept(self, file: SelectedFile) -> bool:
        if not self.check(file):
            return False
        self.selected_file = file
        self.generation += 1
        self.logger.debug(f"Selected {file.name} ({file.size} bytes), generation {self.generation}")
        return True

    def remove(self) -> None:
        self.selected_file = None
        self.generation += 1

    def is_current(self, generation: int) -> bool:
        return generation == self.generation and self.selected_file is not None

    # drag-and-drop only drives the highlight of the drop zone
    def drag_over(self) -> None:
        self.is_dragging = True

    def drag_leave(self) -> None:
        self.is_dragging = False

    def drop(self, file: Optional[SelectedFile]) -> Optional[SelectedFile]:
        self.is_dragging = False
        return file

    def from_pasted_text(self, text: str) -> Optional[SelectedFile]:
        if not text or not text.strip():
            self.notices.error(EMPTY_PASTE_MESSAGE)
            return None
        return SelectedFile.from_text(text)
