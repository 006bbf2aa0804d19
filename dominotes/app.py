from __future__ import annotations
from contextlib import asynccontextmanager
import logging

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional

from .auth import clear_auth_cookie, require_auth, set_auth_cookie, setup_pin, verify_pin
from .db import init_db
from .models import Folder, Note
from .schemas import (
    FolderCreate,
    FolderOut,
    FolderRef,
    FolderUpdate,
    NoteCreate,
    NoteOut,
    NoteRef,
    NoteUpdate,
    PinIn,
)
from .services import (
    ConflictError,
    NotFoundError,
    create_folder,
    create_note,
    delete_folder,
    delete_note,
    get_folder,
    get_note,
    list_folders,
    list_notes,
    update_folder,
    update_note,
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Dominotes API", lifespan=lifespan)
api = APIRouter(prefix="/api", dependencies=[Depends(require_auth)])


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


# ---------- Error bodies: always {"error": ...} ----------
@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))

@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    return _error(400, "Invalid request data", issues=jsonable_encoder(exc.errors()))

@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError):
    return _error(404, str(exc))

@app.exception_handler(ConflictError)
async def _conflict(request: Request, exc: ConflictError):
    return _error(409, str(exc))

@app.exception_handler(SQLAlchemyError)
async def _db_error(request: Request, exc: SQLAlchemyError):
    log.exception("Database error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


def _note_out(n: Note) -> NoteOut:
    return NoteOut(
        id=n.id, title=n.title, content=n.content,
        created_at=n.created_at, updated_at=n.updated_at,
        folders=[FolderRef(id=f.id, name=f.name) for f in n.folders],
    )

def _folder_out(f: Folder) -> FolderOut:
    return FolderOut(
        id=f.id, name=f.name,
        created_at=f.created_at, updated_at=f.updated_at,
        notes=[NoteRef(id=n.id, title=n.title) for n in f.notes],
    )


# ---------- Public ----------
@app.get("/api/health")
def api_health():
    return {"status": "ok"}

@app.post("/api/auth/pin")
def api_pin(payload: PinIn, response: Response, x_action: Optional[str] = Header(None)):
    if x_action == "setup":
        setup_pin(payload.pin)
        log.info("PIN set")
        set_auth_cookie(response)
        return {"message": "PIN successfully set"}
    if not verify_pin(payload.pin):
        raise HTTPException(status_code=401, detail="Invalid PIN")
    set_auth_cookie(response)
    return {"message": "Login successful"}

@app.post("/api/auth/logout")
def api_logout(response: Response):
    clear_auth_cookie(response)
    return {"message": "Logged out successfully"}


# ---------- Notes ----------
@api.get("/notes", response_model=list[NoteOut])
def api_list_notes():
    return [_note_out(n) for n in list_notes()]

@api.post("/notes", response_model=NoteOut, status_code=201)
def api_create_note(payload: NoteCreate):
    n = create_note(payload.title, payload.content, payload.folder_ids)
    return _note_out(n)

@api.get("/notes/{note_id}", response_model=NoteOut)
def api_get_note(note_id: int):
    n = get_note(note_id)
    if not n:
        raise HTTPException(status_code=404, detail="Note not found")
    return _note_out(n)

@api.put("/notes/{note_id}", response_model=NoteOut)
def api_update_note(note_id: int, payload: NoteUpdate):
    n = update_note(
        note_id,
        title=payload.title,
        content=payload.content,
        folder_ids=payload.folder_ids,
    )
    return _note_out(n)

@api.delete("/notes/{note_id}")
def api_delete_note(note_id: int):
    delete_note(note_id)
    return {"message": "Note deleted successfully"}


# ---------- Folders ----------
@api.get("/folders", response_model=list[FolderOut])
def api_list_folders():
    return [_folder_out(f) for f in list_folders()]

@api.post("/folders", response_model=FolderOut, status_code=201)
def api_create_folder(payload: FolderCreate):
    f = create_folder(payload.name, payload.note_ids)
    return _folder_out(f)

@api.get("/folders/{folder_id}", response_model=FolderOut)
def api_get_folder(folder_id: int):
    f = get_folder(folder_id)
    if not f:
        raise HTTPException(status_code=404, detail="Folder not found")
    return _folder_out(f)

@api.put("/folders/{folder_id}", response_model=FolderOut)
def api_update_folder(folder_id: int, payload: FolderUpdate):
    f = update_folder(folder_id, name=payload.name, note_ids=payload.note_ids)
    return _folder_out(f)

@api.delete("/folders/{folder_id}")
def api_delete_folder(folder_id: int):
    delete_folder(folder_id)
    return {"message": "Folder deleted successfully"}


app.include_router(api)
