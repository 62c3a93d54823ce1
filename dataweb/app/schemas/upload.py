from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DatasetSchema(BaseModel):
    columns: list[str]


class DatasetInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    original_name: str
    schema_: DatasetSchema = Field(alias="schema")
    uploaded_at: datetime | None = None


class UploadResponse(BaseModel):
    message: str
    dataset: DatasetInfo


class DatasetListResponse(BaseModel):
    datasets: list[DatasetInfo]
