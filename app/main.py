import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.exam_timetables.router import router as exam_timetables_router
from app.api.v1.reference.router import router as reference_router
from app.api.v1.timetable_slots.router import router as timetable_slots_router
from app.api.v1.timetable_templates.router import router as timetable_templates_router
from app.api.v1.timetables.router import router as timetables_router
from app.core.log_config import configure_logging

logger = logging.getLogger(__name__)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Request failed, please try again"},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Timetable Engine")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Routers. /timetable/slots and /timetable/templates before /timetable/{timetable_id}
    app.include_router(reference_router)
    app.include_router(timetable_templates_router)
    app.include_router(timetable_slots_router)
    app.include_router(timetables_router)
    app.include_router(exam_timetables_router)

    return app


app = create_app()
