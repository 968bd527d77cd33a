import html
import logging
import os
from typing import Any, List, Optional

from dotenv import load_dotenv
from fastapi import Body, Depends, FastAPI, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel, EmailStr, Field

from notes_backend.api.core import (
    NotesFacade, add_note, build_share_url, find_shared_note, list_user_notes,
    remove_note, replace_note, set_note_shared,
)
from notes_backend.api.errors import NotAuthenticated, NotesError, NotFound, ValidationError
from notes_backend.api.rendering import render_markdown
from notes_backend.api.security import SessionRegistry
from notes_database.db import get_db
from notes_database.models import Note
from notes_database.store import DataStore, StoreError

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/signin", auto_error=False)


# Pydantic models for serialization and validation

class SignUpForm(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=256)

class SignInForm(BaseModel):
    email: str
    password: str

class UserOut(BaseModel):
    id: str
    email: str

class AuthOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut

class NoteCreate(BaseModel):
    title: str
    content: str = ""

class NoteUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    shared: Optional[bool] = None

class ShareOut(BaseModel):
    note: Note
    share_url: Optional[str] = None

class PreviewIn(BaseModel):
    content: str = ""

class PreviewOut(BaseModel):
    html: str

# Bodies of the file-backed /api/notes surface; required fields are checked
# by the handlers so that a missing field is a 400, not a schema error.

class ApiNoteCreate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")

class ApiNoteReplace(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None

class ApiShareUpdate(BaseModel):
    shared: Any = None


# FastAPI app config
app = FastAPI(
    title="Personal Notes Backend API",
    description="Markdown notes with user accounts and public share links.",
    version="1.0.0",
    openapi_tags=[
        {"name": "Authentication", "description": "Sign up, sign in and sessions"},
        {"name": "Notes", "description": "Session-scoped note management"},
        {"name": "Notes API", "description": "File-backed REST surface keyed by userId"},
        {"name": "Sharing", "description": "Public read-only access to shared notes"},
    ]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_sessions = SessionRegistry()


def get_sessions() -> SessionRegistry:
    return _sessions


def get_facade(store: DataStore = Depends(get_db), sessions: SessionRegistry = Depends(get_sessions)):
    return NotesFacade(store, sessions)


def _auth_out(auth) -> AuthOut:
    return AuthOut(access_token=auth.access_token, user=UserOut(id=auth.user.id, email=auth.user.email))


# Root Health Check
@app.get("/", summary="Health Check", tags=["General"])
def health_check():
    """Simple health check endpoint."""
    return {"message": "Healthy"}


#####################
# AUTH ENDPOINTS
#####################

# PUBLIC_INTERFACE
@app.post("/auth/signup", response_model=AuthOut, status_code=201, summary="Register a new user", tags=["Authentication"])
def signup(form: SignUpForm, facade: NotesFacade = Depends(get_facade)):
    """
    Register a new user and start a session.
    Returns the bearer token and the user (excluding password).
    """
    return _auth_out(facade.sign_up(form.email, form.password))

# PUBLIC_INTERFACE
@app.post("/auth/signin", response_model=AuthOut, summary="Sign in", tags=["Authentication"])
def signin(form: SignInForm, facade: NotesFacade = Depends(get_facade)):
    """Start a session for an existing user."""
    return _auth_out(facade.sign_in(form.email, form.password))

# PUBLIC_INTERFACE
@app.post("/auth/signout", status_code=204, summary="Sign out", tags=["Authentication"])
def signout(token: Optional[str] = Depends(oauth2_scheme), facade: NotesFacade = Depends(get_facade)):
    """End the session behind the bearer token."""
    facade.sign_out(token)
    return Response(status_code=204)

# PUBLIC_INTERFACE
@app.get("/auth/me", response_model=UserOut, summary="Get current user profile", tags=["Authentication"])
def get_profile(token: Optional[str] = Depends(oauth2_scheme), facade: NotesFacade = Depends(get_facade)):
    user = facade.current_user(token)
    return UserOut(id=user.id, email=user.email)


#####################
# NOTES ENDPOINTS
#####################

# PUBLIC_INTERFACE
@app.get("/notes/", response_model=List[Note], summary="List my notes", tags=["Notes"])
def list_my_notes(token: Optional[str] = Depends(oauth2_scheme), facade: NotesFacade = Depends(get_facade)):
    """
    Notes of the session user in storage order.
    Without a session the list is empty.
    """
    return facade.get_notes(token)

# PUBLIC_INTERFACE
@app.post("/notes/", response_model=Note, status_code=201, summary="Create a new note", tags=["Notes"])
def create_my_note(note: NoteCreate, token: Optional[str] = Depends(oauth2_scheme), facade: NotesFacade = Depends(get_facade)):
    return facade.create_note(token, note.title, note.content)

# PUBLIC_INTERFACE
@app.patch("/notes/{note_id}", response_model=Note, summary="Update a note", tags=["Notes"])
def update_my_note(note_id: str, note_update: NoteUpdate, token: Optional[str] = Depends(oauth2_scheme),
                   facade: NotesFacade = Depends(get_facade)):
    """Only the fields present in the body are changed."""
    return facade.update_note(token, note_id, note_update.model_dump(exclude_unset=True))

# PUBLIC_INTERFACE
@app.delete("/notes/{note_id}", status_code=204, summary="Delete a note", tags=["Notes"])
def delete_my_note(note_id: str, token: Optional[str] = Depends(oauth2_scheme), facade: NotesFacade = Depends(get_facade)):
    """Deleting a note you do not own changes nothing."""
    facade.delete_note(token, note_id)
    return Response(status_code=204)

# PUBLIC_INTERFACE
@app.post("/notes/{note_id}/share", response_model=ShareOut, summary="Toggle sharing", tags=["Notes"])
def toggle_my_note_sharing(note_id: str, request: Request, token: Optional[str] = Depends(oauth2_scheme),
                           facade: NotesFacade = Depends(get_facade)):
    """
    Flip the shared flag. When the note becomes shared the public link is
    returned for the client to copy.
    """
    note = facade.toggle_note_sharing(token, note_id)
    share_url = build_share_url(str(request.base_url), note.id) if note.shared else None
    return ShareOut(note=note, share_url=share_url)


#####################
# FILE-BACKED REST API
#####################

# PUBLIC_INTERFACE
@app.get("/api/notes", response_model=List[Note], summary="List notes of a user", tags=["Notes API"])
def api_list_notes(user_id: Optional[str] = Query(None, alias="userId"), store: DataStore = Depends(get_db)):
    if not user_id:
        raise ValidationError("userId is required")
    return list_user_notes(store, user_id)

# PUBLIC_INTERFACE
@app.post("/api/notes", response_model=Note, status_code=201, summary="Create a note", tags=["Notes API"])
def api_create_note(payload: ApiNoteCreate = Body(...), store: DataStore = Depends(get_db)):
    if not payload.user_id or not payload.title:
        raise ValidationError("userId and title are required")
    return add_note(store, payload.user_id, payload.title, payload.content or "")

# PUBLIC_INTERFACE
@app.put("/api/notes", response_model=Note, summary="Replace title and content", tags=["Notes API"])
def api_replace_note(payload: ApiNoteReplace = Body(...), store: DataStore = Depends(get_db)):
    if not payload.id:
        raise ValidationError("id is required")
    if payload.title is None or payload.content is None:
        raise ValidationError("title and content are required")
    return replace_note(store, payload.id, payload.title, payload.content)

# PUBLIC_INTERFACE
@app.delete("/api/notes", status_code=204, summary="Delete a note", tags=["Notes API"])
def api_delete_note(note_id: Optional[str] = Query(None, alias="id"), store: DataStore = Depends(get_db)):
    if not note_id:
        raise ValidationError("id is required")
    remove_note(store, note_id)
    return Response(status_code=204)

# PUBLIC_INTERFACE
@app.get("/api/notes/{note_id}", response_model=Note, summary="Fetch a shared note", tags=["Sharing"])
def api_get_shared_note(note_id: str, store: DataStore = Depends(get_db)):
    note = find_shared_note(store, note_id)
    if note is None:
        raise NotFound("Note not found or not shared")
    return note

# PUBLIC_INTERFACE
@app.put("/api/notes/{note_id}", response_model=Note, summary="Set the shared flag", tags=["Notes API"])
def api_set_shared(note_id: str, payload: ApiShareUpdate = Body(...), store: DataStore = Depends(get_db)):
    if not isinstance(payload.shared, bool):
        raise ValidationError("Invalid shared value")
    return set_note_shared(store, note_id, payload.shared)


#####################
# SHARE PAGE & PREVIEW
#####################

SHARE_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<article>
<h1>{title}</h1>
<div class="note-content">{body}</div>
</article>
</body>
</html>
"""

SHARE_NOT_FOUND = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>Not found</title></head>
<body><p>Note not found or not shared</p></body>
</html>
"""

# PUBLIC_INTERFACE
@app.get("/share/{note_id}", response_class=HTMLResponse, summary="Read a shared note", tags=["Sharing"])
def share_page(note_id: str, store: DataStore = Depends(get_db)):
    note = find_shared_note(store, note_id)
    if note is None:
        return HTMLResponse(SHARE_NOT_FOUND, status_code=404)
    return HTMLResponse(SHARE_PAGE.format(title=html.escape(note.title), body=render_markdown(note.content)))

# PUBLIC_INTERFACE
@app.post("/markdown/preview", response_model=PreviewOut, summary="Render Markdown", tags=["Notes"])
def markdown_preview(payload: PreviewIn):
    return PreviewOut(html=render_markdown(payload.content))


# Error handlers
@app.exception_handler(NotesError)
def notes_error_handler(request, exc: NotesError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, NotAuthenticated) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": type(exc).__name__, "detail": exc.detail},
        headers=headers,
    )

@app.exception_handler(RequestValidationError)
def request_validation_handler(request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "ValidationError", "detail": jsonable_encoder(exc.errors())},
    )

@app.exception_handler(StoreError)
def store_error_handler(request, exc: StoreError):
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "StoreError", "detail": str(exc)})
