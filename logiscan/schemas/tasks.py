from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class TaskSpecDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str
    type: str = "custom"
    description: Optional[str] = None
    assignedUserID: Optional[str] = None
    scanListID: Optional[str] = None
    truckID: Optional[str] = None
    location: Optional[str] = None
    triggerNotification: bool = False
    blocked: bool = False


class BuildTaskChainRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tasks: List[TaskSpecDto] = []


class CancelTaskRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    reason: Optional[str] = None
