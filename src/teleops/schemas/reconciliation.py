"""Pydantic request/response models for reconciliation endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from ..models.results import BeneficiaryStatus


class EngineOverrides(BaseModel):
    """Per-request overrides of the configured engine defaults."""

    similarity_threshold: Optional[float] = Field(default=None, description="Token-set similarity needed for a name match.")
    min_phone_length: Optional[int] = Field(default=None, description="Minimum digits for a phone number to be valid.")
    up_to_date_days: Optional[int] = None
    pending_days: Optional[int] = None
    success_keywords: Optional[Sequence[str]] = None
    failure_keywords: Optional[Sequence[str]] = None
    unassigned_label: Optional[str] = None


class ReconciliationRequest(BaseModel):
    beneficiaries: list[dict[str, Any]] = Field(default_factory=list, description="Beneficiary registry rows.")
    assignments: list[dict[str, Any]] = Field(default_factory=list, description="Operator/beneficiary assignment rows.")
    calls: list[dict[str, Any]] = Field(default_factory=list, description="Call log rows.")
    operators: Optional[list[dict[str, Any]]] = Field(default=None, description="Operator registry rows.")
    config: Optional[EngineOverrides] = None
    now: Optional[datetime] = Field(default=None, description="Reference time for recency status (defaults to now).")
    persist: bool = Field(default=False, description="Whether to write run outputs to files.")
    run_label: Optional[str] = Field(default=None, description="Friendly name for persisted outputs.")


class StoreReconciliationRequest(BaseModel):
    config: Optional[EngineOverrides] = None
    now: Optional[datetime] = None
    persist: bool = Field(default=False, description="Whether to write run outputs to files.")
    run_label: Optional[str] = None
    beneficiaries_file: Optional[str] = Field(
        default=None,
        description="Uploaded registry file (xlsx/csv, relative to the uploads folder) used when the store has no beneficiaries.",
    )
    calls_file: Optional[str] = Field(
        default=None,
        description="Uploaded call log file used when the store has no call events.",
    )

    @field_validator("beneficiaries_file", "calls_file")
    @classmethod
    def validate_file_name(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("file name must not be blank")
        return value.strip() if value else value


class OrphanAssignmentModel(BaseModel):
    position: int
    beneficiary_name: str
    phones: list[str]
    operator_id: str


class AmbiguousMatchModel(BaseModel):
    beneficiary_id: str
    chosen_operator_id: str
    candidate_operator_ids: list[str]
    conflicting: bool


class ReconciliationModel(BaseModel):
    mapping: dict[str, str]
    unassigned: list[str]
    orphan_assignments: list[OrphanAssignmentModel]
    ambiguous_matches: list[AmbiguousMatchModel]
    assigned_count: int


class OperatorMetricsModel(BaseModel):
    operator_id: str
    display_name: str
    total_calls: int
    successful_calls: int
    failed_calls: int
    total_duration_seconds: int
    average_duration_seconds: float
    success_rate: float
    distinct_beneficiaries: int
    beneficiary_keys: list[str]
    is_unassigned: bool


class GlobalMetricsModel(BaseModel):
    total_calls: int
    successful_calls: int
    failed_calls: int
    total_duration_seconds: int
    average_duration_seconds: float
    success_rate: float
    distinct_beneficiaries: int
    unassigned_calls: int


class MetricsModel(BaseModel):
    per_operator: list[OperatorMetricsModel]
    global_metrics: GlobalMetricsModel
    hourly_distribution: list[int]
    totals_consistent: bool


class BeneficiaryStatusModel(BaseModel):
    beneficiary_id: str
    name: str
    operator_id: Optional[str]
    status: BeneficiaryStatus
    last_successful_call: Optional[datetime]
    days_since_last_success: Optional[int]
    call_count: int


class DiagnosticsModel(BaseModel):
    malformed_beneficiaries: int
    malformed_assignments: int
    malformed_calls: int
    beneficiaries_without_phone: int
    unknown_operator_refs: int
    orphan_assignments: int
    ambiguous_matches: int
    conflicting_matches: int
    clamped_durations: int
    unparsed_timestamps: int
    unresolved_calls: int
    warnings: list[str]


class ReconciliationRunResponse(BaseModel):
    generated_at: datetime
    reconciliation: ReconciliationModel
    metrics: MetricsModel
    beneficiary_statuses: list[BeneficiaryStatusModel]
    diagnostics: DiagnosticsModel
    run_id: Optional[str] = Field(default=None, description="Output directory name when the run was persisted.")
