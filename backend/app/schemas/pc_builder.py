from typing import Dict, List
from pydantic import BaseModel, Field

from app.models.product import PcPartType
from app.schemas.cart import OperationResult
from app.services.pc_builder_service import BuildStep


class BuildRequest(BaseModel):
    """Product chosen for each filled slot of a build."""
    parts: Dict[PcPartType, str] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "parts": {
                    "cpu": "9b2f6a0e-6d1c-4b6e-9a43-5f0f1c2d3e4a",
                    "motherboard": "4c1d7e2a-0a2b-4e61-8f4c-0d6e9b7a1c22"
                }
            }
        }


class BuildSummaryResponse(BaseModel):
    """State of a build as the wizard shows it."""
    steps: List[BuildStep]
    selected: Dict[PcPartType, str]
    total_price: float
    completed_steps: int
    required_complete: bool
    progress: float
    warnings: List[str]
    results: List[OperationResult] = Field(default_factory=list)
