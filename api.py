import asyncio
import json
from contextlib import asynccontextmanager, contextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.responses import FileResponse, StreamingResponse
from pydantic import BaseModel

from models.schemas import ImportType, Notice, SelectedFile
from utils.logging import get_logger
from wizard import ImportWizard, format_file_size

logger = get_logger(__name__)

_wizard: Optional[ImportWizard] = None


def get_wizard() -> ImportWizard:
    global _wizard
    if _wizard is None:
        _wizard = ImportWizard()
    return _wizard


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _wizard
    yield
    if _wizard is not None:
        await _wizard.close()
        _wizard = None


app = FastAPI(title="CSV import wizard", lifespan=lifespan)


class TypeSelection(BaseModel):
    type: ImportType


class PastedCsv(BaseModel):
    text: str


@contextmanager
def collect_notices(wizard: ImportWizard):
    notices: List[Notice] = []
    unsubscribe = wizard.notices.subscribe(notices.append)
    try:
        yield notices
    finally:
        unsubscribe()


def wizard_state(wizard: ImportWizard) -> dict:
    file = wizard.selected_file
    preview = wizard.csv_preview
    current = wizard.current_import
    return {
        "step": int(wizard.current_step),
        "config": wizard.import_config.model_dump(mode="json", by_alias=True),
        "expectedFileName": wizard.get_expected_file_name(),
        "requiredColumns": wizard.get_required_columns(),
        "selectedFile": None if file is None else {
            "name": file.name,
            "size": file.size,
            "sizeLabel": format_file_size(file.size),
        },
        "preview": None if preview is None else preview.model_dump(mode="json", by_alias=True),
        "currentImport": None if current is None else current.model_dump(mode="json", by_alias=True),
        "isImporting": wizard.is_importing,
        "isLoadingPreview": wizard.is_loading_preview,
    }


def respond(wizard: ImportWizard, notices: List[Notice], **extra) -> dict:
    return {
        "state": wizard_state(wizard),
        "notices": [n.model_dump(mode="json") for n in notices],
        **extra,
    }


def sse_event(event: str, data: dict):
    payload = json.dumps({"event": event, **data})
    # Standard SSE format without the event field (using data only)
    return f"data: {payload}\n\n"


@app.get("/wizard")
async def get_state(wizard: ImportWizard = Depends(get_wizard)):
    return wizard_state(wizard)


@app.post("/wizard/type")
async def select_type(selection: TypeSelection, wizard: ImportWizard = Depends(get_wizard)):
    with collect_notices(wizard) as notices:
        accepted = wizard.select_import_type(selection.type)
    return respond(wizard, notices, accepted=accepted)


async def _select(wizard: ImportWizard, task: Optional[asyncio.Task]) -> bool:
    if task is None:
        return False
    try:
        await task
    except asyncio.CancelledError:
        # superseded by a newer selection
        return False
    return wizard.csv_preview is not None


@app.post("/wizard/file")
async def upload(file: UploadFile = File(...), wizard: ImportWizard = Depends(get_wizard)):
    contents = await file.read()
    selected = SelectedFile(name=file.filename or "", content=contents,
                            content_type=file.content_type or "text/csv")
    with collect_notices(wizard) as notices:
        accepted = await _select(wizard, wizard.select_file(selected))
    return respond(wizard, notices, accepted=accepted)


@app.post("/wizard/paste")
async def paste(body: PastedCsv, wizard: ImportWizard = Depends(get_wizard)):
    with collect_notices(wizard) as notices:
        accepted = await _select(wizard, wizard.process_pasted_csv(body.text))
    return respond(wizard, notices, accepted=accepted)


@app.delete("/wizard/file")
async def remove_file(wizard: ImportWizard = Depends(get_wizard)):
    wizard.remove_file()
    return wizard_state(wizard)


@app.post("/wizard/import")
async def start_import(wizard: ImportWizard = Depends(get_wizard)):
    with collect_notices(wizard) as notices:
        started = await wizard.start_import()
    return respond(wizard, notices, started=started)


@app.post("/wizard/cancel")
async def cancel_import(wizard: ImportWizard = Depends(get_wizard)):
    with collect_notices(wizard) as notices:
        cancelled = await wizard.cancel_import()
    return respond(wizard, notices, cancelled=cancelled)


@app.post("/wizard/reset")
async def reset(wizard: ImportWizard = Depends(get_wizard)):
    wizard.reset_import()
    return wizard_state(wizard)


class ImportFollower:
    """
    Decides when a progress stream is over: once the import it follows is no
    longer polled. Without an id it follows whichever import is running when
    the stream opens, or else the next one to start.
    """

    def __init__(self, wizard: ImportWizard, import_id: Optional[str] = None):
        self.wizard = wizard
        self.import_id = import_id
        current = wizard.current_import
        if wizard.is_importing and current is not None:
            self.import_id = current.id

    def finished(self) -> bool:
        current = self.wizard.current_import
        if current is None:
            return False
        if self.wizard.is_importing:
            self.import_id = current.id
            return False
        return current.id == self.import_id


@app.get("/wizard/progress")
async def progress_stream(import_id: Optional[str] = None, wizard: ImportWizard = Depends(get_wizard)):
    """Server-Sent Events with every progress update, notice and step change."""
    follower = ImportFollower(wizard, import_id)
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribers = [
        wizard.progress.subscribe(lambda p: queue.put_nowait(("progress", p.model_dump(mode="json", by_alias=True)))),
        wizard.notices.subscribe(lambda n: queue.put_nowait(("notice", n.model_dump(mode="json")))),
        wizard.step.subscribe(lambda s: queue.put_nowait(("step", {"step": int(s)}))),
    ]

    async def event_stream():
        try:
            while True:
                event, data = await queue.get()
                yield sse_event(event, data)

                if follower.finished():
                    while not queue.empty():
                        event, data = queue.get_nowait()
                        yield sse_event(event, data)
                    yield sse_event("done", wizard_state(wizard))
                    break
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@app.get("/history")
async def history(limit: Optional[int] = None, offset: Optional[int] = None,
                  wizard: ImportWizard = Depends(get_wizard)):
    items = await wizard.load_history(limit=limit, offset=offset)
    return {
        "total": wizard.history.total,
        "items": [h.model_dump(mode="json", by_alias=True) for h in items],
    }


@app.get("/history/{import_id}/errors")
async def error_report(import_id: str, wizard: ImportWizard = Depends(get_wizard)):
    path = wizard.download_error_report(import_id)
    if path is None:
        raise HTTPException(404, f"No error report for import {import_id}")
    return FileResponse(path, media_type="text/csv", filename=path.replace("\\", "/").rsplit("/", 1)[-1])


@app.post("/history/{import_id}/revert")
async def revert(import_id: str, wizard: ImportWizard = Depends(get_wizard)):
    with collect_notices(wizard) as notices:
        reverted = await wizard.revert_import(import_id)
    return respond(wizard, notices, reverted=reverted)


@app.get("/templates/{import_type}")
async def template(import_type: ImportType, wizard: ImportWizard = Depends(get_wizard)):
    path = await wizard.download_template(import_type)
    if path is None:
        raise HTTPException(502, "Template not available")
    return FileResponse(path, media_type="text/csv", filename=f"plantilla_{import_type.value}.csv")
