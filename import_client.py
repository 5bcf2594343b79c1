from typing import Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from models.schemas import (
    CancelResponse,
    ImportConfig,
    ImportHistoryResponse,
    ImportResponse,
    ImportType,
    PreviewResponse,
    RevertResponse,
    SelectedFile,
    ValidateResponse,
)
from utils.logging import get_logger, timing_decorator

logger = get_logger(__name__)

API_PREFIX = "/api/admin/import"
INVALID_RESPONSE_MESSAGE = "Respuesta no válida del servidor"

M = TypeVar("M", bound=BaseModel)


class ImportApiError(Exception):
    """Transport failure or non-2xx answer from the import API."""

    def __init__(self, message: str, status_code: Optional[int] = None, server_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.server_message = server_message

    def user_message(self, fallback: str) -> str:
        """What to show the user: the server's own words if it sent any."""
        return self.server_message or fallback


def extract_message(response: httpx.Response) -> Optional[str]:
    """Best-effort human readable reason from an error response body."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        for key in ("message", "error"):
            if body.get(key):
                return str(body[key])
    return None


class ImportApiClient:
    """
    Async client for the admin CSV import endpoints.

    Every call returns the parsed response envelope; transport errors and
    non-2xx answers are raised as ImportApiError. Nothing is retried here.
    """

    def __init__(self,
                 base_url: str,
                 api_token: Optional[str] = None,
                 timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{API_PREFIX}{path}"
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {str(e)}")
            raise ImportApiError(str(e) or e.__class__.__name__) from e

        if response.is_error:
            server_message = extract_message(response)
            message = server_message or f"{response.status_code} {response.reason_phrase}".strip()
            logger.error(f"{method} {url} returned {response.status_code}: {message}")
            raise ImportApiError(message, status_code=response.status_code, server_message=server_message)
        return response

    async def _call(self, model: Type[M], method: str, path: str, **kwargs) -> M:
        """Send the request and parse the body into `model`; any mismatch is an ImportApiError."""
        response = await self._request(method, path, **kwargs)
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(f"{method} {API_PREFIX}{path}: unexpected {model.__name__} body: {str(e)}")
            raise ImportApiError(INVALID_RESPONSE_MESSAGE, status_code=response.status_code) from e

    @staticmethod
    def _file_part(file: SelectedFile):
        return {"file": (file.name, file.content, file.content_type)}

    @timing_decorator
    async def preview(self, file: SelectedFile) -> PreviewResponse:
        return await self._call(PreviewResponse, "POST", "/preview", files=self._file_part(file))

    @timing_decorator
    async def start(self, file: SelectedFile, config: ImportConfig) -> ImportResponse:
        return await self._call(
            ImportResponse, "POST", "/start",
            files=self._file_part(file),
            data={"config": config.to_form_value()},
        )

    async def status(self, import_id: str) -> ImportResponse:
        return await self._call(ImportResponse, "GET", f"/status/{import_id}")

    async def cancel(self, import_id: str) -> CancelResponse:
        return await self._call(CancelResponse, "POST", f"/cancel/{import_id}", json={})

    async def history(self, limit: Optional[int] = None, offset: Optional[int] = None) -> ImportHistoryResponse:
        # zero/None are left out of the query string
        params = {}
        if limit:
            params["limit"] = str(limit)
        if offset:
            params["offset"] = str(offset)
        return await self._call(ImportHistoryResponse, "GET", "/history", params=params)

    async def revert(self, import_id: str) -> RevertResponse:
        return await self._call(RevertResponse, "POST", f"/revert/{import_id}", json={})

    async def validate(self, file: SelectedFile, import_type: ImportType) -> ValidateResponse:
        return await self._call(
            ValidateResponse, "POST", "/validate",
            files=self._file_part(file),
            data={"type": ImportType(import_type).value},
        )

    async def template(self, import_type: ImportType) -> bytes:
        response = await self._request("GET", "/template", params={"type": ImportType(import_type).value})
        return response.content
