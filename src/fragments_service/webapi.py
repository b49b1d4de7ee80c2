import hashlib
import logging
import os
from pathlib import Path

from fastapi import FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response

from fragments_service.fragments import FragmentError, FragmentService
from fragments_service.fragments.adapters import InMemoryStorage, LocalStorage
from fragments_service.fragments.errors import (
    ConversionError,
    NotFoundError,
    UnsupportedConversionError,
    UnsupportedFormatError,
    UnsupportedTypeError,
    ValidationError,
)
from fragments_service.fragments.formats import is_supported_type
from fragments_service.logging_config import setup_logging

app = FastAPI(
    title="Fragments Service",
    version=os.getenv("FRAGMENTS_SERVICE_VERSION", "0.1.0"),
    description=(
        "RESTful API storing typed content fragments per owner and converting "
        "them between formats of the same family."
    ),
)

# Global configuration defaults
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").lower()
DATA_DIR = Path(os.getenv("DATA_DIR", "./data")).resolve()
MAX_FRAGMENT_MB = int(os.getenv("MAX_FRAGMENT_MB", "5"))
API_URL = os.getenv("API_URL", "")

logger = logging.getLogger(__name__)

SERVICE: FragmentService | None = None

# Most specific class first: UnsupportedTypeError is a ValidationError
_STATUS_BY_ERROR: list[tuple[type[FragmentError], int]] = [
    (UnsupportedTypeError, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (UnsupportedFormatError, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE),
    (UnsupportedConversionError, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE),
    (ConversionError, 422),
]


def status_for(exc: FragmentError) -> int:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(FragmentError)
async def _fragment_error_handler(request: Request, exc: FragmentError) -> JSONResponse:
    code = status_for(exc)
    logger.warning("%s %s failed with %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=code, content={"detail": {"code": exc.code, "message": exc.message}})


def _caller_owner_id(auth_header: str | None) -> str:
    # Owner ids are the SHA-256 of the caller's bearer token; verifying it is upstream's job.
    if not auth_header:
        raise HTTPException(status_code=401, detail={"code": "unauthorized", "message": "missing bearer token"})
    scheme, _, rest = auth_header.partition(" ")
    token = rest.strip()
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail={"code": "unauthorized", "message": "missing bearer token"})
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _service() -> FragmentService:
    global SERVICE
    assert SERVICE is not None
    return SERVICE


async def _read_body(request: Request) -> bytes:
    max_bytes = MAX_FRAGMENT_MB * 1024 * 1024
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise HTTPException(status_code=413, detail={"code": "payload_too_large", "message": f"fragment exceeds {MAX_FRAGMENT_MB} MB"})
    body = await request.body()
    if len(body) > max_bytes:
        raise HTTPException(status_code=413, detail={"code": "payload_too_large", "message": f"fragment exceeds {MAX_FRAGMENT_MB} MB"})
    return body


def _content_type(request: Request) -> str:
    ct = (request.headers.get("content-type") or "").strip()
    if not ct or not is_supported_type(ct):
        raise HTTPException(
            status_code=415,
            detail={"code": "unsupported_media_type", "message": f"content-type {ct or '(none)'} not supported"},
        )
    return ct


@app.on_event("startup")
async def _startup() -> None:
    setup_logging("fragments_service")
    global SERVICE
    if STORAGE_BACKEND == "local":
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        storage = LocalStorage(str(DATA_DIR))
    elif STORAGE_BACKEND == "memory":
        storage = InMemoryStorage()
    else:
        raise RuntimeError(f"unknown STORAGE_BACKEND {STORAGE_BACKEND!r}")
    SERVICE = FragmentService(storage=storage)
    logger.info("Fragments service started with %s storage", STORAGE_BACKEND)


@app.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.get("/v1/fragments")
async def list_fragments(expand: str | None = None, authorization: str | None = Header(None)) -> JSONResponse:
    owner_id = _caller_owner_id(authorization)
    fragments = await _service().list_by_owner(owner_id, expand=expand == "1")
    body = [f.to_record() if not isinstance(f, str) else f for f in fragments]
    return JSONResponse(content={"status": "ok", "fragments": body})


@app.post("/v1/fragments", status_code=status.HTTP_201_CREATED)
async def create_fragment(request: Request, authorization: str | None = Header(None)) -> JSONResponse:
    """Create a fragment from the raw request body.

    The Content-Type header becomes the fragment type. Returns 201 Created
    with a Location header pointing at the new fragment.
    """
    owner_id = _caller_owner_id(authorization)
    ct = _content_type(request)
    body = await _read_body(request)
    fragment = await _service().create_fragment(owner_id, ct, body)
    host = API_URL or str(request.base_url).rstrip("/")
    headers = {"Location": f"{host}/v1/fragments/{fragment.id}"}
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"status": "ok", "fragment": fragment.to_record()},
        headers=headers,
    )


@app.get("/v1/fragments/{fragment_id}/info")
async def get_fragment_info(fragment_id: str, authorization: str | None = Header(None)) -> JSONResponse:
    owner_id = _caller_owner_id(authorization)
    fragment = await _service().load_by_id(owner_id, fragment_id)
    return JSONResponse(content={"status": "ok", "fragment": fragment.to_record(), "formats": fragment.formats})


@app.get("/v1/fragments/{fragment_id}")
async def get_fragment(fragment_id: str, authorization: str | None = Header(None)) -> Response:
    """Return fragment data, converted when the id ends in an extension such as `.html`."""
    owner_id = _caller_owner_id(authorization)
    _, result = await _service().fetch(owner_id, fragment_id)
    return Response(content=result.data, media_type=result.type)


@app.put("/v1/fragments/{fragment_id}")
async def update_fragment(fragment_id: str, request: Request, authorization: str | None = Header(None)) -> JSONResponse:
    owner_id = _caller_owner_id(authorization)
    ct = _content_type(request)
    body = await _read_body(request)
    fragment = await _service().replace_data(owner_id, fragment_id, ct, body)
    return JSONResponse(content={"status": "ok", "fragment": fragment.to_record()})


@app.delete("/v1/fragments/{fragment_id}")
async def delete_fragment(fragment_id: str, authorization: str | None = Header(None)) -> JSONResponse:
    owner_id = _caller_owner_id(authorization)
    await _service().delete(owner_id, fragment_id)
    return JSONResponse(content={"status": "ok"})


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("fragments_service.webapi:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()
