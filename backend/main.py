"""
ClassRecord — grade computation and entry service.
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment before the routers read their settings
load_dotenv()

from routes.grades import router as grades_router  # noqa: E402
from routes.activities import router as activities_router  # noqa: E402
from routes.entry import router as entry_router  # noqa: E402

INSTITUTION_NAME = os.getenv("INSTITUTION_NAME", "My School")
PASS_MARK = int(os.getenv("PASS_MARK", "75"))
# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="ClassRecord API",
    description=(
        "Class record computation — category totals, weighted scores, "
        "transmuted grades, rankings and grade entry locking."
    ),
    version="1.0.0",
)

# CORS — allow the React dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(grades_router, prefix="/api/grades", tags=["Grades"])
app.include_router(activities_router, prefix="/api/activities", tags=["Activities"])
app.include_router(entry_router, prefix="/api/entry", tags=["Grade Entry"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "institution_name": INSTITUTION_NAME,
        "pass_mark": PASS_MARK,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "institution_name": INSTITUTION_NAME,
        "pass_mark": PASS_MARK,
        "grades_api_base_url": os.getenv("GRADES_API_BASE_URL", "http://localhost:8080"),
        "conflict_check": os.getenv("GRADE_CONFLICT_CHECK", "false").strip().lower() in {"1", "true", "yes", "on"},
    }
