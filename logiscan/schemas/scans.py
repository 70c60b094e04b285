from pydantic import BaseModel, ConfigDict


class AssetScanRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    assetID: str
