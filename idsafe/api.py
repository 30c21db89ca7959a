"""FastAPI wrapper around the IDSafe registry for validators and the admin via HTTP."""

from typing import Any, Callable, Dict, Optional

try:
    from fastapi import Depends, FastAPI, Header, HTTPException
    from pydantic import BaseModel
except ImportError as exc:  # pragma: no cover
    raise SystemExit(
        "FastAPI not installed. Install with: pip install fastapi uvicorn\n"
        "You can still use the CLI via `python -m idsafe.cli`."
    ) from exc

from .auth import load_api_tokens, resolve_caller
from .db import list_events
from .engine import ApprovalEngine
from .errors import IdSafeError, InvalidArgument, NotFound, ThresholdViolation, Unauthorized
from .storage import StateStore
from .utils import EMPTY_DIGEST, normalize_id


def require_caller(x_api_token: Optional[str] = Header(None)) -> str:
    if not load_api_tokens():
        raise HTTPException(status_code=500, detail="API token not configured")
    caller = resolve_caller(x_api_token)
    if caller is None:
        raise HTTPException(status_code=401, detail="Invalid or missing API token")
    return caller


class HashIn(BaseModel):
    data_hash: str


class AdminIn(BaseModel):
    new_admin: str


class ValidatorIn(BaseModel):
    id: str


class ThresholdIn(BaseModel):
    threshold: int


app = FastAPI(title="IDSafe API", version="0.1.0")


def _http_error(exc: IdSafeError) -> HTTPException:
    if isinstance(exc, Unauthorized):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ThresholdViolation):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, InvalidArgument):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _read_engine() -> ApprovalEngine:
    try:
        return ApprovalEngine.from_snapshot(StateStore().load())
    except FileNotFoundError:
        raise HTTPException(status_code=503, detail="Registry not initialised")


def _mutate(op: Callable[[ApprovalEngine], Any]) -> Any:
    store = StateStore()
    try:
        with store.locked():
            return op(store.open_engine())
    except FileNotFoundError:
        raise HTTPException(status_code=503, detail="Registry not initialised")
    except IdSafeError as exc:
        raise _http_error(exc)


def _identity_view(engine: ApprovalEngine, subject: str) -> Dict[str, Any]:
    record = engine.get_record(subject)
    if record is None:
        return {
            "subject": normalize_id(subject),
            "exists": False,
            "data_hash": EMPTY_DIGEST,
            "approvers": [],
            "registered": False,
            "state": engine.identity_state(subject).value,
        }
    view = record.to_dict()
    view["exists"] = True
    return view


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/status")
def status():
    engine = _read_engine()
    return {
        "admin": engine.admin(),
        "threshold": engine.approval_threshold(),
        "validators": engine.validators(),
    }


@app.get("/identities/{subject}")
def get_identity(subject: str):
    return _identity_view(_read_engine(), subject)


@app.get("/identities/{subject}/hash")
def get_identity_hash(subject: str):
    return {"subject": normalize_id(subject), "data_hash": _read_engine().get_identity_hash(subject)}


@app.get("/identities/{subject}/registered")
def is_registered(subject: str):
    return {"subject": normalize_id(subject), "registered": _read_engine().is_registered(subject)}


@app.get("/validators/{identifier}")
def is_validator(identifier: str):
    return {"id": normalize_id(identifier), "is_validator": _read_engine().is_validator(identifier)}


@app.post("/identities/{subject}")
def register_identity(subject: str, body: HashIn, caller: str = Depends(require_caller)):
    record = _mutate(lambda engine: engine.register_identity(caller, subject, body.data_hash))
    return record.to_dict()


@app.post("/identities/{subject}/approve")
def approve_identity(subject: str, caller: str = Depends(require_caller)):
    record = _mutate(lambda engine: engine.approve_identity(caller, subject))
    return record.to_dict()


@app.put("/identities/{subject}/hash")
def store_identity_hash(subject: str, body: HashIn, caller: str = Depends(require_caller)):
    record = _mutate(lambda engine: engine.store_identity_hash(caller, subject, body.data_hash))
    return record.to_dict()


@app.post("/identities/{subject}/revoke")
def revoke_identity(subject: str, caller: str = Depends(require_caller)):
    record = _mutate(lambda engine: engine.revoke_identity(caller, subject))
    return record.to_dict()


@app.put("/admin")
def change_admin(body: AdminIn, caller: str = Depends(require_caller)):
    _mutate(lambda engine: engine.change_admin(caller, body.new_admin))
    return {"admin": normalize_id(body.new_admin)}


@app.post("/validators")
def add_validator(body: ValidatorIn, caller: str = Depends(require_caller)):
    added = _mutate(lambda engine: engine.add_validator(caller, body.id))
    return {"id": normalize_id(body.id), "added": added}


@app.delete("/validators/{identifier}")
def remove_validator(identifier: str, caller: str = Depends(require_caller)):
    _mutate(lambda engine: engine.remove_validator(caller, identifier))
    return {"id": normalize_id(identifier), "removed": True}


@app.put("/threshold")
def change_threshold(body: ThresholdIn, caller: str = Depends(require_caller)):
    _mutate(lambda engine: engine.change_threshold(caller, body.threshold))
    return {"threshold": body.threshold}


@app.get("/audit")
def audit(limit: int = 50, _: str = Depends(require_caller)):
    return list_events(limit=limit)
