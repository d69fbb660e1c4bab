# -*- coding: utf-8 -*-

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from abap_analyzer import __version__
from abap_analyzer.api.endpoints.analysis import router as analysis_router
from abap_analyzer.api.endpoints.config import router as config_router
from abap_analyzer.config import get_cors_origins

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)

CORS_ORIGINS = get_cors_origins()

app = FastAPI(title="ABAP Code Analyzer", version=__version__)

# CORS - browser front ends (React dev server by default)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(config_router)
app.include_router(analysis_router)

logger.info("ABAP Code Analyzer API %s ready (cors_origins=%s)", __version__, CORS_ORIGINS)


@app.get("/")
async def root():
    return {"message": "ABAP Code Analyzer API", "version": __version__}
