import logging
from contextlib import asynccontextmanager
from typing import Literal, Optional

import kuzu
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from . import people, relations, schemas, suggestions
from .db import check_db_integrity, get_conn, get_database, write_sentinel
from .errors import IdCollision, InvariantViolation, KinshipError, NotFound, StoreUnavailable
from .lifecycle import days_remaining
from .models import Slot, Status, linked_id
from .visibility import FULL_ACCESS, ActorScope, is_public, is_visible, visible_to

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    check_db_integrity(kuzu.Connection(get_database()))
    yield


app = FastAPI(lifespan=lifespan)

_ERROR_STATUS = {
    NotFound: 404,
    InvariantViolation: 409,
    IdCollision: 409,
    StoreUnavailable: 503,
}


@app.exception_handler(KinshipError)
async def kinship_error(request: Request, exc: KinshipError):
    status = next((code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    if status == 503:
        logger.error("Store unavailable during %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"detail": "Service unavailable"}, status_code=status)
    return JSONResponse({"detail": str(exc)}, status_code=status)


# ── Collaborator hooks ──

def get_actor_scope() -> ActorScope:
    """Scope of the signed-in admin. The identity provider integration overrides this."""
    return FULL_ACCESS


def get_oracle() -> Optional[suggestions.SuggestionOracle]:
    """Relative-suggestion oracle. None until one is configured."""
    return None


# ── Public routes ──

@app.post("/api/register", response_model=schemas.PersonOut)
def register(body: schemas.PersonCreate, conn=Depends(get_conn)):
    person = people.create_person(conn, body.to_fields(), Status.PENDING)
    write_sentinel()
    return schemas.PersonOut.from_person(person)


@app.get("/api/people", response_model=list[schemas.PersonOut])
def public_people(q: str = "", conn=Depends(get_conn)):
    result = people.list_people(conn, status=Status.APPROVED)
    if q:
        needle = q.strip().lower()
        result = [p for p in result if needle in p.display_name.lower()]
    return [schemas.PersonOut.from_person(p) for p in result]


def _public_person(conn, person_id: str):
    person = people.get_person(conn, person_id)
    if person is None or not is_public(person):
        raise HTTPException(404, "Profile not found")
    return person


@app.get("/api/people/{person_id}", response_model=schemas.PersonOut)
def public_person(person_id: str, conn=Depends(get_conn)):
    return schemas.PersonOut.from_person(_public_person(conn, person_id))


@app.get("/api/people/{person_id}/family", response_model=schemas.FamilyViewOut)
def public_family(person_id: str, conn=Depends(get_conn)):
    _public_person(conn, person_id)
    snapshot = people.snapshot(conn, status=Status.APPROVED)
    person = relations.find_by_id(person_id, snapshot)
    return schemas.FamilyViewOut.from_view(relations.family_view(person, snapshot))


@app.get("/health")
def health():
    return {"ok": True}


# ── Admin routes ──

admin = APIRouter(prefix="/api/admin")


def _visible_person(conn, person_id: str, scope: ActorScope):
    person = people.get_person(conn, person_id)
    if person is None or not is_visible(person, scope):
        raise NotFound(person_id)
    return person


def _visible_relatives(conn, fields: dict, scope: ActorScope):
    """Linked relatives in `fields` must be visible too. Dangling ids are left to the store."""
    for slot in Slot:
        relative = people.get_person(conn, linked_id(fields.get(slot.value)))
        if relative is not None and not is_visible(relative, scope):
            raise NotFound(relative.id)


@admin.get("/people", response_model=list[schemas.PersonOut])
def admin_people(status: Optional[Literal["pending", "approved", "deleted"]] = None,
                 unlinked_only: bool = False,
                 conn=Depends(get_conn), scope: ActorScope = Depends(get_actor_scope)):
    result = people.list_people(conn, status=status, visible=visible_to(scope))
    if unlinked_only:
        result = [p for p in result if relations.is_unlinked(p)]
    return [schemas.PersonOut.from_person(p) for p in result]


@admin.post("/people", response_model=schemas.PersonOut)
def admin_create(body: schemas.PersonCreate, conn=Depends(get_conn),
                 scope: ActorScope = Depends(get_actor_scope)):
    fields = body.to_fields()
    _visible_relatives(conn, fields, scope)
    person = people.create_person(conn, fields, Status.APPROVED)
    write_sentinel()
    return schemas.PersonOut.from_person(person)


@admin.post("/people/deceased")
def admin_bulk_deceased(body: schemas.BulkDeceasedIn, conn=Depends(get_conn),
                        scope: ActorScope = Depends(get_actor_scope)):
    for person_id in body.ids:
        _visible_person(conn, person_id, scope)
    updated = people.bulk_set_deceased(conn, body.ids, body.is_deceased)
    return {"updated": updated}


@admin.get("/people/{person_id}", response_model=schemas.PersonOut)
def admin_person(person_id: str, conn=Depends(get_conn),
                 scope: ActorScope = Depends(get_actor_scope)):
    return schemas.PersonOut.from_person(_visible_person(conn, person_id, scope))


@admin.put("/people/{person_id}", response_model=schemas.PersonOut)
def admin_update(person_id: str, body: schemas.PersonUpdate, conn=Depends(get_conn),
                 scope: ActorScope = Depends(get_actor_scope)):
    _visible_person(conn, person_id, scope)
    patch = body.to_patch()
    _visible_relatives(conn, patch, scope)
    person = people.update_person(conn, person_id, patch)
    return schemas.PersonOut.from_person(person)


@admin.post("/people/{person_id}/approve", response_model=schemas.PersonOut)
def admin_approve(person_id: str, conn=Depends(get_conn),
                  scope: ActorScope = Depends(get_actor_scope)):
    _visible_person(conn, person_id, scope)
    return schemas.PersonOut.from_person(people.set_approval(conn, person_id, True))


@admin.post("/people/{person_id}/unapprove", response_model=schemas.PersonOut)
def admin_unapprove(person_id: str, conn=Depends(get_conn),
                    scope: ActorScope = Depends(get_actor_scope)):
    _visible_person(conn, person_id, scope)
    return schemas.PersonOut.from_person(people.set_approval(conn, person_id, False))


@admin.delete("/people/{person_id}", response_model=schemas.PersonOut)
def admin_soft_delete(person_id: str, conn=Depends(get_conn),
                      scope: ActorScope = Depends(get_actor_scope)):
    _visible_person(conn, person_id, scope)
    return schemas.PersonOut.from_person(people.soft_delete(conn, person_id))


@admin.post("/people/{person_id}/recover", response_model=schemas.PersonOut)
def admin_recover(person_id: str, conn=Depends(get_conn),
                  scope: ActorScope = Depends(get_actor_scope)):
    _visible_person(conn, person_id, scope)
    return schemas.PersonOut.from_person(people.recover(conn, person_id))


@admin.delete("/people/{person_id}/purge")
def admin_purge(person_id: str, conn=Depends(get_conn),
                scope: ActorScope = Depends(get_actor_scope)):
    _visible_person(conn, person_id, scope)
    people.purge(conn, person_id)
    return {"ok": True}


@admin.get("/dustbin", response_model=list[schemas.DustbinEntryOut])
def admin_dustbin(conn=Depends(get_conn), scope: ActorScope = Depends(get_actor_scope)):
    deleted = people.list_people(conn, status=Status.DELETED, visible=visible_to(scope))
    return [
        schemas.DustbinEntryOut.from_person(p, days_remaining=days_remaining(p.deleted_at))
        for p in deleted
    ]


@admin.post("/import", response_model=schemas.ImportOut)
def admin_import(body: schemas.ImportIn, conn=Depends(get_conn)):
    count = people.import_batch(conn, [r.to_fields() for r in body.records])
    write_sentinel()
    return {"count": count, "message": f"{count} people imported successfully."}


@admin.get("/people/{person_id}/family", response_model=schemas.FamilyViewOut)
def admin_family(person_id: str, conn=Depends(get_conn),
                 scope: ActorScope = Depends(get_actor_scope)):
    _visible_person(conn, person_id, scope)
    snapshot = people.snapshot(conn, visible=visible_to(scope))
    person = relations.find_by_id(person_id, snapshot)
    return schemas.FamilyViewOut.from_view(relations.family_view(person, snapshot))


@admin.get("/people/{person_id}/candidates/{slot}", response_model=list[schemas.PersonOut])
def admin_candidates(person_id: str, slot: Slot, conn=Depends(get_conn),
                     scope: ActorScope = Depends(get_actor_scope)):
    person = _visible_person(conn, person_id, scope)
    snapshot = people.snapshot(conn, visible=visible_to(scope))
    return [schemas.PersonOut.from_person(p)
            for p in relations.relative_candidates(person, slot, snapshot)]


def _require_oracle(oracle=Depends(get_oracle)):
    if oracle is None:
        raise HTTPException(503, "Suggestion service is not configured")
    return oracle


@admin.post("/people/{person_id}/suggestions", response_model=list[suggestions.Suggestion])
def admin_suggest(person_id: str, conn=Depends(get_conn),
                  scope: ActorScope = Depends(get_actor_scope),
                  oracle=Depends(_require_oracle)):
    _visible_person(conn, person_id, scope)
    try:
        return suggestions.suggest_connections(conn, person_id, oracle)
    except KinshipError:
        raise
    except Exception as e:
        logger.exception("Suggestion oracle failed for %s", person_id)
        raise HTTPException(502, "Could not get suggestions") from e


@admin.post("/people/{person_id}/suggestions/accept", response_model=schemas.PersonOut)
def admin_accept_suggestion(person_id: str, body: suggestions.Suggestion,
                            conn=Depends(get_conn),
                            scope: ActorScope = Depends(get_actor_scope)):
    _visible_person(conn, person_id, scope)
    _visible_person(conn, body.candidate_id, scope)
    return schemas.PersonOut.from_person(suggestions.accept_suggestion(conn, person_id, body))


app.include_router(admin)
