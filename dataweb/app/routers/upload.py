from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session as DBSession

from dataweb.app.database import get_db
from dataweb.app.dependencies.auth import get_current_user
from dataweb.app.errors import ValidationError
from dataweb.app.models.dataset import Dataset
from dataweb.app.schemas.upload import (
    DatasetInfo,
    DatasetListResponse,
    DatasetSchema,
    UploadResponse,
)
from dataweb.app.services.file_service import (
    create_dataset,
    decode_schema,
    get_owned_dataset,
    list_datasets,
)
from dataweb.app.utils.security import CurrentUser

router = APIRouter()


def _to_info(dataset: Dataset) -> DatasetInfo:
    schema = decode_schema(dataset.schema_json) or {"columns": []}
    return DatasetInfo(
        id=dataset.id,
        original_name=dataset.original_name,
        schema_=DatasetSchema(columns=[str(c) for c in schema["columns"]]),
        uploaded_at=dataset.uploaded_at,
    )


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
def upload_file(
    file: UploadFile | None = File(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")

    dataset = create_dataset(db, current_user.id, file.filename, file.file, declared_size=file.size)

    return UploadResponse(message="File uploaded successfully", dataset=_to_info(dataset))


@router.get("/upload/datasets", response_model=DatasetListResponse)
def get_datasets(
    current_user: CurrentUser = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    datasets = list_datasets(db, current_user.id)
    return DatasetListResponse(datasets=[_to_info(d) for d in datasets])


@router.get("/upload/datasets/{dataset_id}", response_model=DatasetInfo)
def get_dataset(
    dataset_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: DBSession = Depends(get_db),
):
    return _to_info(get_owned_dataset(db, dataset_id, current_user.id))
