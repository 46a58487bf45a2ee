import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from libraryms.core.config import configure_logging
from libraryms.core.database import init_db
from libraryms.core.exceptions import LibraryError
from libraryms.api import routes

configure_logging()
logger = logging.getLogger("libraryms")

init_db()
app = FastAPI(title="Library Management System")
app.include_router(routes.router)


@app.exception_handler(LibraryError)
def library_error_handler(request: Request, exc: LibraryError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/health")
def health():
    return {"status": "ok"}
