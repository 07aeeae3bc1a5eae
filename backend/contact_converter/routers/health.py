from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ..context import AppContext, get_context

router = APIRouter()


@router.get("/health")
def health(ctx: AppContext = Depends(get_context)):
    store_backend = ctx.store.backend_name
    resp = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round(ctx.uptime_seconds, 1),
        "store": {
            "backend": store_backend,
            "redis_configured": bool(ctx.settings.redis_url),
        },
        "output_format": ctx.settings.output_format,
        "template_enabled": ctx.settings.template_enabled,
    }
    if ctx.settings.redis_url and store_backend != "redis":
        # Demoted to the in-process store: files are not shared across workers
        resp["status"] = "degraded"
    return resp
