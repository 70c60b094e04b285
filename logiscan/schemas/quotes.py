from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict


class AvailabilityBatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    quantities: Dict[str, int] = {}


class AdjustQuoteItemRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    quantity: int


class ValidateQuoteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    generateScanLists: bool = True
    generateTasks: bool = True
    operatorUserID: Optional[str] = None
