"""
Download Router

Serves emitted spreadsheets:
- GET /download/{id} - link-mode downloads, optional ``?p=<password>``
- GET /files/{id} - media-mode downloads fetched by Twilio
- HEAD /files/{id} - Twilio's pre-fetch, headers only

The identifier may carry a ``.csv`` / ``.xlsx`` suffix. Unknown and
expired identifiers get the same 404 page.
"""

import hmac
import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, Response

from ..context import AppContext, get_context
from ..models import Artifact

logger = logging.getLogger(__name__)
router = APIRouter()

UTF8_BOM = b"\xef\xbb\xbf"
_SUFFIX = re.compile(r"\.(csv|xlsx)$", re.IGNORECASE)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

NOT_FOUND_HTML = """<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>File not found</title></head>
<body><h1>File not found</h1><p>This link is invalid or has expired.</p></body></html>"""

PASSWORD_HTML = """<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>Password required</title></head>
<body><h1>Password required</h1>{notice}
<form method="get"><input type="password" name="p" inputmode="numeric" autocomplete="off">
<button type="submit">Download</button></form></body></html>"""


def _not_found() -> HTMLResponse:
    return HTMLResponse(NOT_FOUND_HTML, status_code=404, headers=NO_CACHE_HEADERS)


def _password_page(attempted: bool) -> HTMLResponse:
    notice = "<p>That password is incorrect.</p>" if attempted else "<p>Enter the password from your WhatsApp chat.</p>"
    return HTMLResponse(PASSWORD_HTML.format(notice=notice), status_code=200, headers=NO_CACHE_HEADERS)


def _password_ok(artifact: Artifact, supplied: Optional[str]) -> bool:
    if not artifact.password:
        return True
    if not supplied:
        return False
    return hmac.compare_digest(artifact.password.encode(), supplied.strip().encode())


def _body(artifact: Artifact, csv_bom: bool) -> bytes:
    content = artifact.content
    if csv_bom and artifact.extension == "csv" and not content.startswith(UTF8_BOM):
        content = UTF8_BOM + content
    return content


async def _serve(ctx: AppContext, raw_id: str, password: Optional[str], head: bool = False) -> Response:
    artifact_id = _SUFFIX.sub("", raw_id)
    artifact = await ctx.artifacts.load(artifact_id)
    if artifact is None:
        logger.info("Download requested for unknown or expired artifact")
        return _not_found()

    if not _password_ok(artifact, password):
        return _password_page(attempted=bool(password))

    body = _body(artifact, ctx.settings.csv_bom)
    headers = {
        **NO_CACHE_HEADERS,
        "Content-Disposition": f'attachment; filename="{artifact.filename}"',
        "Content-Length": str(len(body)),
    }
    if head:
        return Response(status_code=200, media_type=artifact.content_type, headers=headers)

    logger.info(f"Serving {artifact.extension} artifact ({artifact.contact_count} contacts, {len(body)} bytes)")
    return Response(content=body, media_type=artifact.content_type, headers=headers)


@router.get("/download/{artifact_id}")
async def download(
    artifact_id: str,
    p: Optional[str] = Query(None),
    ctx: AppContext = Depends(get_context),
):
    return await _serve(ctx, artifact_id, p)


@router.api_route("/files/{artifact_id}", methods=["GET", "HEAD"])
async def media_file(
    artifact_id: str,
    request: Request,
    p: Optional[str] = Query(None),
    ctx: AppContext = Depends(get_context),
):
    """Media-mode URL; Twilio sends HEAD before GET."""
    return await _serve(ctx, artifact_id, p, head=request.method == "HEAD")
