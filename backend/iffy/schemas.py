"""
Pydantic schemas for request/response validation
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum

# ===== Common Schemas =====

class ApiError(BaseModel):
    error: str
    message: str
    status_code: Optional[int] = None

class HealthResponse(BaseModel):
    status: str
    service: str

class GiftCountResponse(BaseModel):
    resultCount: int

# ===== Catalog / model schemas =====

class CatalogEntry(BaseModel):
    """One row of the gift sheet."""
    model_config = ConfigDict(frozen=True)

    brand: str = ""
    name: str
    description: str = ""
    age_bracket: str = ""
    purchase_link: str = ""
    image_url: str = ""

class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_person: bool
    description: str
    estimated_age: int = Field(ge=0)

class RecommendationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    selected_product_name: str
    reason: str
    humor_line: str

# ===== Iffy (job record) =====

class IffyStatus(str, Enum):
    processing = "processing"
    completed = "completed"
    failed = "failed"

class IffyRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    estimated_age: int = 0
    is_person: bool = False
    description: Optional[str] = None
    style_prompt: Optional[str] = None
    gift_name: Optional[str] = None
    brand: Optional[str] = None
    gift_image_url: Optional[str] = None
    product_image_url: Optional[str] = None
    commentary: Optional[str] = None
    purchase_link: Optional[str] = None
    humor_line: Optional[str] = None
    is_error: bool = False
    user_id: Optional[str] = None
    status: IffyStatus = IffyStatus.processing
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class IffyErrorPayload(BaseModel):
    """Best-effort response when the record itself could not be saved."""
    id: str
    is_error: bool = True
    status: IffyStatus = IffyStatus.failed
    commentary: str
    updated_at: datetime

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
