from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from refskills import __version__
from refskills.auth import (
    Identity,
    get_config,
    get_current_identity,
    issue_admin_token,
    issue_normal_token,
    require_admin,
)
from refskills.config import Config
from refskills.db import connect, init_db
from refskills.errors import register_error_handlers
from refskills.store import (
    add_skill,
    create_ref,
    create_skill,
    delete_ref,
    delete_skill,
    get_ref_name,
    get_skills,
    list_refs,
    list_skills,
    remove_skill,
    search_skills,
)


logger = logging.getLogger(__name__)

router = APIRouter()


class AdminPasswordRequest(BaseModel):
    password: str


# -----------------------------
# Health
# -----------------------------


@router.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "ok"}


@router.get("/admincheck")
def admin_check(_admin: Identity = Depends(require_admin)) -> Response:
    return Response(status_code=200)


# -----------------------------
# Tokens
# -----------------------------


@router.get("/token/{ref}", response_class=PlainTextResponse)
def token_for_ref(ref: str, cfg: Config = Depends(get_config)) -> str:
    with connect(cfg.DB_DSN) as conn:
        return issue_normal_token(conn, cfg, ref)


@router.post("/token/admin", response_class=PlainTextResponse)
def token_admin(payload: AdminPasswordRequest, cfg: Config = Depends(get_config)) -> str:
    token = issue_admin_token(cfg, payload.password)
    logger.info("Issued admin token")
    return token


@router.get("/getref", response_class=PlainTextResponse)
def get_bound_ref(identity: Identity = Depends(get_current_identity)) -> str:
    return identity.reference


# -----------------------------
# References
# -----------------------------


@router.post("/ref/create/{name}", response_class=PlainTextResponse)
def ref_create(name: str, cfg: Config = Depends(get_config)) -> str:
    with connect(cfg.DB_DSN, immediate=True) as conn:
        return create_ref(conn, name)


@router.delete("/ref/delete/{ref}")
def ref_delete(
    ref: str,
    cfg: Config = Depends(get_config),
    _admin: Identity = Depends(require_admin),
) -> Response:
    with connect(cfg.DB_DSN, immediate=True) as conn:
        delete_ref(conn, ref)
    return Response(status_code=200)


@router.get("/ref/list")
def ref_list(
    cfg: Config = Depends(get_config),
    _admin: Identity = Depends(require_admin),
) -> List[Dict[str, str]]:
    with connect(cfg.DB_DSN) as conn:
        return list_refs(conn)


@router.get("/ref/{ref}/name", response_class=PlainTextResponse)
def ref_name(ref: str, cfg: Config = Depends(get_config)) -> str:
    with connect(cfg.DB_DSN) as conn:
        return get_ref_name(conn, ref)


@router.get("/ref/{ref}/skills")
def ref_skills(
    ref: str,
    cfg: Config = Depends(get_config),
    _identity: Identity = Depends(get_current_identity),
) -> List[str]:
    with connect(cfg.DB_DSN) as conn:
        return get_skills(conn, ref)


@router.post("/ref/{ref}/add_skill/{skill}")
def ref_add_skill(
    ref: str,
    skill: str,
    cfg: Config = Depends(get_config),
    _admin: Identity = Depends(require_admin),
) -> Response:
    with connect(cfg.DB_DSN, immediate=True) as conn:
        add_skill(conn, ref, skill)
    return Response(status_code=200)


@router.delete("/ref/{ref}/remove_skill/{skill}")
def ref_remove_skill(
    ref: str,
    skill: str,
    cfg: Config = Depends(get_config),
    _admin: Identity = Depends(require_admin),
) -> Response:
    with connect(cfg.DB_DSN, immediate=True) as conn:
        remove_skill(conn, ref, skill)
    return Response(status_code=200)


# -----------------------------
# Skills
# -----------------------------


@router.post("/skills/create/{name}")
def skills_create(
    name: str,
    cfg: Config = Depends(get_config),
    _admin: Identity = Depends(require_admin),
) -> Response:
    with connect(cfg.DB_DSN, immediate=True) as conn:
        create_skill(conn, name)
    return Response(status_code=200)


@router.delete("/skills/delete/{skill}")
def skills_delete(
    skill: str,
    cfg: Config = Depends(get_config),
    _admin: Identity = Depends(require_admin),
) -> Response:
    with connect(cfg.DB_DSN, immediate=True) as conn:
        delete_skill(conn, skill)
    return Response(status_code=200)


@router.get("/skills/list")
def skills_list(
    cfg: Config = Depends(get_config),
    _identity: Identity = Depends(get_current_identity),
) -> List[str]:
    with connect(cfg.DB_DSN) as conn:
        return list_skills(conn)


@router.get("/skills/search/{term}")
def skills_search(
    term: str,
    threshold: Optional[float] = Query(None),
    cfg: Config = Depends(get_config),
    _identity: Identity = Depends(get_current_identity),
) -> List[str]:
    with connect(cfg.DB_DSN) as conn:
        return search_skills(conn, term, cfg.SEARCH_THRESHOLD if threshold is None else threshold)


# -----------------------------
# App factory
# -----------------------------


def create_app(cfg: Config) -> FastAPI:
    """Build the API around an explicit Config.

    Creates the schema (and seeds the default reference) before returning.
    """
    app = FastAPI(title="Reference / Skill Registry", version=__version__)
    app.state.cfg = cfg

    # CORS: "*" (the default) allows any origin without credentials.
    origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials="*" not in origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def _trace_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
        return response

    register_error_handlers(app)
    app.include_router(router)

    init_db(cfg.DB_DSN)
    return app
