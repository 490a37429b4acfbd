"""kvsheet.webhook

Request adapter: JSON body in, ``{"result": "success"}`` out.

Body layout:

    {
      "destination": "kv1",
      "data": [
        {"keys": {"k1": "a"}, "values": {"v1": 10}},
        ...
      ]
    }

``handle_request`` lets every error propagate.  ``create_app`` wraps it in a
FastAPI app whose exception handlers turn kvsheet errors into JSON
envelopes:

    RequestValidationError -> 400
    NotFoundError          -> 404
    ConfigurationError     -> 422
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import tzinfo
from typing import Any, Mapping

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from kvsheet.kv_config import DEFAULT_CONFIG_TABLE, ConfigResolver
from kvsheet.settings import Settings, store_zone
from kvsheet.shared import (
    ConfigurationError,
    NotFoundError,
    RequestValidationError,
    UpsertCounters,
)
from kvsheet.store import TableStore
from kvsheet.upsert import UpsertRecord, upsert_records
from kvsheet.values import UTC, is_scalar

log = logging.getLogger(__name__)

SUCCESS = {"result": "success"}


@dataclass(frozen=True)
class UpsertRequest:
    destination: str
    data: list[UpsertRecord]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _scalar_fields(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise RequestValidationError(f"{where} must be an object")
    for column_id, cell in value.items():
        if cell is None:
            continue
        if not is_scalar(cell):
            raise RequestValidationError(
                f"{where}.{column_id} must be a string, number or boolean"
            )
    return {k: ("" if v is None else v) for k, v in value.items()}


def parse_request(body: str | bytes | Mapping[str, Any]) -> UpsertRequest:
    """Validate a request body and convert it into an UpsertRequest.

    Null cell values become ''.  An empty ``data`` list is allowed.
    """
    if isinstance(body, (str, bytes, bytearray)):
        try:
            body = json.loads(body)
        except ValueError as exc:
            raise RequestValidationError(f"body is not valid JSON: {exc}") from exc
    if not isinstance(body, Mapping):
        raise RequestValidationError("body must be a JSON object")

    destination = body.get("destination")
    if not isinstance(destination, str) or not destination:
        raise RequestValidationError("'destination' must be a non-empty string")

    data = body.get("data")
    if not isinstance(data, list):
        raise RequestValidationError("'data' must be a list")

    records: list[UpsertRecord] = []
    for i, datum in enumerate(data):
        if not isinstance(datum, dict):
            raise RequestValidationError(f"data[{i}] must be an object")
        if "keys" not in datum:
            raise RequestValidationError(f"data[{i}] is missing 'keys'")
        keys = _scalar_fields(datum["keys"], f"data[{i}].keys")
        if not keys:
            raise RequestValidationError(f"data[{i}].keys must not be empty")
        values = _scalar_fields(datum.get("values", {}), f"data[{i}].values")
        records.append(UpsertRecord(keys=keys, values=values))
    return UpsertRequest(destination=destination, data=records)


# ---------------------------------------------------------------------------
# Handling
# ---------------------------------------------------------------------------

def apply_request(
    request: UpsertRequest,
    store: TableStore,
    config_table: str = DEFAULT_CONFIG_TABLE,
    zone: tzinfo = UTC,
    run_id: str = "-",
) -> tuple[str, UpsertCounters]:
    """Resolve the destination and run the batch; return (table_name, counters)."""
    resolver = ConfigResolver.from_store(store, config_table)
    table_name = resolver.destination_name(request.destination)
    column_names = resolver.column_name_map(request.destination)
    table = store.get_table(table_name)
    log.info(
        "[%s] destination=%s table=%s records=%d",
        run_id, request.destination, table_name, len(request.data),
    )
    ctrs = upsert_records(store, table, column_names, request.data, zone=zone, run_id=run_id)
    return table_name, ctrs


def handle_request(
    body: str | bytes | Mapping[str, Any],
    store: TableStore,
    config_table: str = DEFAULT_CONFIG_TABLE,
    zone: tzinfo = UTC,
    run_id: str | None = None,
) -> dict[str, str]:
    run_id = run_id or str(uuid.uuid4())
    request = parse_request(body)
    apply_request(request, store, config_table, zone=zone, run_id=run_id)
    return dict(SUCCESS)


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

def _error(status_code: int, kind: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"result": "error", "error": kind, "message": str(exc)},
    )


def create_app(store: TableStore, settings: Settings | None = None) -> FastAPI:
    """Build the webhook app around an already-opened store."""
    settings = settings or Settings()
    zone = store_zone(store, settings)
    lock = threading.Lock()
    app = FastAPI(title="kvsheet")

    def _handle(body: bytes) -> dict[str, str]:
        run_id = str(uuid.uuid4())
        with lock:
            return handle_request(body, store, settings.config_table, zone=zone, run_id=run_id)

    @app.post("/")
    async def webhook(request: Request) -> JSONResponse:
        body = await request.body()
        return JSONResponse(await run_in_threadpool(_handle, body))

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        log.warning("Rejected request: %s", exc)
        return _error(400, "request_validation", exc)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        log.warning("Lookup failed: %s", exc)
        return _error(404, "not_found", exc)

    @app.exception_handler(ConfigurationError)
    async def _bad_config(request: Request, exc: ConfigurationError) -> JSONResponse:
        log.error("Configuration error: %s", exc)
        return _error(422, "configuration", exc)

    return app
