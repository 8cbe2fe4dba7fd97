"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings
from ...db.supabase import get_supabase_client

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/store", status_code=status.HTTP_200_OK)
def check_store() -> dict:
    """Check the Supabase connection and the call-center tables."""
    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "message": "Supabase not configured. Set TELEOPS_SUPABASE_URL and TELEOPS_SUPABASE_KEY environment variables.",
            "tables": {},
        }

    tables: dict[str, bool] = {}
    errors: list[str] = []
    for table in (
        settings.beneficiaries_table,
        settings.assignments_table,
        settings.calls_table,
        settings.operators_table,
    ):
        try:
            supabase.table(table).select("*", count="exact").limit(1).execute()
            tables[table] = True
        except Exception as exc:
            tables[table] = False
            errors.append(f"{table}: {exc}")

    if not any(tables.values()):
        return {
            "configured": True,
            "connected": False,
            "tables": tables,
            "error": "; ".join(errors),
            "message": "Database connection error: no table could be queried.",
        }

    missing = [name for name, present in tables.items() if not present]
    return {
        "configured": True,
        "connected": True,
        "tables": tables,
        "message": f"Database connected. Missing tables: {', '.join(missing)}" if missing else "Database connected.",
    }
