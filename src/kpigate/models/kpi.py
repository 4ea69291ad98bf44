"""
KPI snapshot response models.

Serialised with the camelCase keys the dashboard consumes.
"""

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CustomerSummary(_CamelModel):
    """Customer row echoed in the snapshot with numeric defaults applied."""

    id: Optional[str] = None
    name: Optional[str] = None
    is_pilot: Optional[bool] = None
    contract_value: float = 0
    arr: float = 0
    start_date: Optional[dt.date] = None
    status: Optional[str] = None


class PipelineClientView(_CamelModel):
    """Pipeline client formatted for the board."""

    id: Optional[str] = None
    name: Optional[str] = None
    segment: Optional[str] = None
    stage: str = "initial_meeting"
    estimated_contract_size: float = Field(default=0, alias="estimatedContractSize")
    engagement_start_date: Optional[dt.date] = Field(default=None, alias="engagementStartDate")
    status: Optional[str] = None
    notes: Optional[str] = None
    days_since_engagement: int = Field(default=0, alias="daysSinceEngagement")


class PipelineCell(_CamelModel):
    """One segment x stage cell of the pipeline matrix."""

    count: int = 0
    clients: List[PipelineClientView] = Field(default_factory=list)
    total_value: float = Field(default=0, alias="totalValue")


class KPISnapshot(_CamelModel):
    """
    Aggregate served to the dashboard.

    Recomputed per request, never persisted.
    """

    cash_position: float = Field(default=0, alias="cashPosition")
    cash_position_date: Optional[dt.date] = Field(default=None, alias="cashPositionDate")
    monthly_burn: float = Field(default=0, alias="monthlyBurn")
    monthly_burn_month: Optional[dt.date] = Field(default=None, alias="monthlyBurnMonth")
    customer_count: int = Field(default=0, alias="customerCount")
    total_arr: float = Field(default=0, alias="totalARR")
    total_contract_value: float = Field(default=0, alias="totalContractValue")
    full_time_employee_count: int = Field(default=0, alias="fullTimeEmployeeCount")
    contractor_count: int = Field(default=0, alias="contractorCount")
    customers: List[CustomerSummary] = Field(default_factory=list)
    pipeline_clients: List[PipelineClientView] = Field(default_factory=list, alias="pipelineClients")
    pipeline_matrix: Dict[str, Dict[str, PipelineCell]] = Field(default_factory=dict, alias="pipelineMatrix")
    pipeline_notes: List[Dict[str, Any]] = Field(default_factory=list, alias="pipelineNotes")

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
