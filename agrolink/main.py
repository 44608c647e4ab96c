import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from agrolink.api.v1 import index
from agrolink.api.v1 import relationship
from agrolink.api.v1 import invitation
from agrolink.api.v1 import access
from agrolink.api.v1 import supply_chain


from agrolink.core.config import settings
from agrolink.core.exceptions import AgroLinkError
from agrolink.core.logging import setup_logging

setup_logging()

app = FastAPI(title=settings.app_name)

# Middlewares
origins = []

if settings.allowed_hosts:
    origins = settings.allowed_hosts.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AgroLinkError)
def handle_agrolink_error(request: Request, exc: AgroLinkError):
    logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} ({exc.detail})")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code}
    )


# Register routes
app.include_router(index.router, prefix="/api/v1")
app.include_router(
    relationship.router, prefix="/api/v1/relationships", tags=["Relationships"])
app.include_router(
    invitation.router, prefix="/api/v1/invitations", tags=["Invitations"])
app.include_router(access.router, prefix="/api/v1/access", tags=["Access"])
app.include_router(supply_chain.router,
                   prefix="/api/v1/supply-chain", tags=["Supply Chain"])

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=None,
    )
