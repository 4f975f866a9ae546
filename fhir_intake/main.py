"""
FastAPI application entrypoint.

Run locally:  uvicorn fhir_intake.main:app --reload
"""

import logging

from fastapi import FastAPI

from fhir_intake.api.routes import router
from fhir_intake.config import settings
from fhir_intake.fhir.client import FhirClient
from fhir_intake.models.database import Base, engine

logging.basicConfig(
    level=settings.LOG_LEVEL, format="%(levelname)s | %(name)s | %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="FHIR Intake Service",
    description=(
        "Converts patient intake forms into HL7 FHIR R4 resources, submits them "
        "as one atomic transaction, and reads patient charts back from the repository."
    ),
    version="2.0.0",
)

app.include_router(router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup():
    Base.metadata.create_all(bind=engine)
    client = FhirClient()
    await client.connect()
    app.state.fhir_client = client
    if not client.has_credentials:
        logger.warning("FHIR repository credentials not configured; requests are unauthenticated")


@app.on_event("shutdown")
async def on_shutdown():
    client = getattr(app.state, "fhir_client", None)
    if client is not None:
        await client.close()
