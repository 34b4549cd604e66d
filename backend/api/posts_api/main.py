from __future__ import annotations

from pathlib import Path
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv

# -------------------------------------------------------------------
# ENV LOADING (must run before importing anything that reads env)
# Always load backend/api/.env no matter where uvicorn is launched from.
# backend/api/posts_api/main.py -> parents[1] == backend/api
# -------------------------------------------------------------------
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

from fastapi import FastAPI, HTTPException, Header, Query, Response  # noqa: E402

from posts_api.db import get_engine, db_ping  # noqa: E402
from posts_api.schemas import (  # noqa: E402
    AllowedTransitionsOut,
    EditIn,
    PostCreateIn,
    PostListOut,
    PostOut,
    PostUpdateIn,
    TransitionIn,
    TransitionOut,
)
from posts_api import access, repo  # noqa: E402
from posts_api.access import require_caller  # noqa: E402
from posts_api.errors import AccessDenied, ConstraintViolation, ImmutableFieldError  # noqa: E402
from posts_api.structure import describe_structure  # noqa: E402
from posts_api.workflow import (  # noqa: E402
    INTENDED_PROGRESSION,
    WorkflowError,
    allowed_transitions,
    intended_next,
    is_forward,
    list_statuses,
    validate_transition,
)

app = FastAPI(title="Content Posts API", version="0.1.0")

# Permissive placeholder gate until an identity/authorization system exists.
access.install_default_policy()


def _bad_request(e: Exception) -> HTTPException:
    return HTTPException(status_code=400, detail=str(e))


# -----------------------------
# Health checks
# -----------------------------
@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/readyz")
def readyz():
    engine = get_engine()
    db_ping(engine)
    return {"status": "ready", "db": "ok"}


@app.get("/debug/structure")
def debug_structure():
    engine = get_engine()
    with engine.connect() as conn:
        return describe_structure(conn)


# -----------------------------
# Workflow helpers
# -----------------------------
@app.get("/workflow/statuses")
def workflow_statuses():
    return {"statuses": list_statuses(), "intended_progression": list(INTENDED_PROGRESSION)}


@app.get("/posts/{post_id}/allowed", response_model=AllowedTransitionsOut)
def post_allowed(post_id: str, x_caller_id: str | None = Header(default=None, alias="X-Caller-Id")):
    engine = get_engine()
    caller = require_caller(x_caller_id)

    try:
        current = repo.get_post(engine, post_id, caller=caller)
    except KeyError:
        raise HTTPException(status_code=404, detail="Not found")
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))

    from_status = current["status"]
    return {
        "post_id": current["id"],
        "from_status": from_status,
        "allowed": allowed_transitions(from_status),
        "intended_next": intended_next(from_status),
    }


# -----------------------------
# Post endpoints
# -----------------------------
@app.post("/posts", response_model=PostOut, status_code=201)
def create_post(body: PostCreateIn, x_caller_id: str | None = Header(default=None, alias="X-Caller-Id")):
    engine = get_engine()
    caller = require_caller(x_caller_id)

    try:
        return repo.create_post(
            engine,
            body.content,
            body.content_type,
            title=body.title,
            status=body.status,
            source_data=body.source_data,
            original_content=body.original_content,
            edit_history=body.edit_history,
            scheduled_date=body.scheduled_date,
            platform=body.platform,
            tags=body.tags,
            caller=caller,
        )
    except ConstraintViolation as e:
        raise _bad_request(e)
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))


@app.get("/posts", response_model=PostListOut)
def list_posts(
    content_type: Optional[str] = None,
    status: Optional[str] = None,
    platform: Optional[str] = None,
    scheduled_from: Optional[datetime] = None,
    scheduled_to: Optional[datetime] = None,
    q: Optional[str] = None,
    sort: str = "created_at_desc",
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    x_caller_id: str | None = Header(default=None, alias="X-Caller-Id"),
):
    engine = get_engine()
    caller = require_caller(x_caller_id)

    try:
        items, total = repo.list_posts(
            engine,
            content_type=content_type,
            status=status,
            platform=platform,
            scheduled_from=scheduled_from,
            scheduled_to=scheduled_to,
            q=q,
            sort=sort,
            limit=limit,
            offset=offset,
            caller=caller,
        )
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))

    return {"items": items, "limit": limit, "offset": offset, "total": total}


@app.get("/posts/{post_id}", response_model=PostOut)
def get_post(post_id: str, x_caller_id: str | None = Header(default=None, alias="X-Caller-Id")):
    engine = get_engine()
    caller = require_caller(x_caller_id)

    try:
        return repo.get_post(engine, post_id, caller=caller)
    except KeyError:
        raise HTTPException(status_code=404, detail="Not found")
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))


@app.patch("/posts/{post_id}", response_model=PostOut)
def update_post(post_id: str, body: PostUpdateIn, x_caller_id: str | None = Header(default=None, alias="X-Caller-Id")):
    engine = get_engine()
    caller = require_caller(x_caller_id)

    try:
        return repo.update_post(engine, post_id, body.model_dump(exclude_unset=True), caller=caller)
    except KeyError:
        raise HTTPException(status_code=404, detail="Not found")
    except (ConstraintViolation, ImmutableFieldError, ValueError) as e:
        raise _bad_request(e)
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))


@app.post("/posts/{post_id}/edits", response_model=PostOut)
def record_edit(post_id: str, body: EditIn, x_caller_id: str | None = Header(default=None, alias="X-Caller-Id")):
    engine = get_engine()
    caller = require_caller(x_caller_id)

    try:
        return repo.record_edit(engine, post_id, body.content, note=body.note, caller=caller)
    except KeyError:
        raise HTTPException(status_code=404, detail="Not found")
    except ConstraintViolation as e:
        raise _bad_request(e)
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))


@app.post("/posts/{post_id}/transition", response_model=TransitionOut)
def transition(post_id: str, body: TransitionIn, x_caller_id: str | None = Header(default=None, alias="X-Caller-Id")):
    engine = get_engine()
    caller = require_caller(x_caller_id)

    try:
        current = repo.get_post(engine, post_id, caller=caller)
        from_status = current["status"]

        to_status = validate_transition(from_status, body.to_status)
        updated = repo.update_post(engine, post_id, {"status": to_status}, caller=caller)

        return {
            "post_id": updated["id"],
            "from_status": from_status,
            "to_status": to_status,
            "in_order": is_forward(from_status, to_status),
            "post": updated,
        }

    except KeyError:
        raise HTTPException(status_code=404, detail="Not found")
    except (WorkflowError, ConstraintViolation) as e:
        raise _bad_request(e)
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))


@app.delete("/posts/{post_id}", status_code=204)
def delete_post(post_id: str, x_caller_id: str | None = Header(default=None, alias="X-Caller-Id")):
    engine = get_engine()
    caller = require_caller(x_caller_id)

    try:
        repo.delete_post(engine, post_id, caller=caller)
    except KeyError:
        raise HTTPException(status_code=404, detail="Not found")
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))

    return Response(status_code=204)
