"""API routes for reconciliation runs."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ...schemas.reconciliation import (
    ReconciliationRequest,
    ReconciliationRunResponse,
    StoreReconciliationRequest,
)
from ...services.reconciliation.service import process_reconciliation_request, process_store_request

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


@router.post("/run", response_model=ReconciliationRunResponse, status_code=status.HTTP_200_OK)
def run_reconciliation(payload: ReconciliationRequest) -> ReconciliationRunResponse:
    """Reconcile the posted collections and return mapping, metrics and diagnostics."""
    try:
        return process_reconciliation_request(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/run-from-store", response_model=ReconciliationRunResponse, status_code=status.HTTP_200_OK)
def run_reconciliation_from_store(payload: StoreReconciliationRequest) -> ReconciliationRunResponse:
    """Reconcile the collections currently held in Supabase."""
    try:
        return process_store_request(payload)
    except ConnectionError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Database connection error: {str(exc)}. Please check the store is reachable and try again.",
        ) from exc
    except FileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error running reconciliation from store: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to run reconciliation: {str(exc)}",
        ) from exc
