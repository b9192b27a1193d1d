"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输

请求 DTO 同时接受 snake_case 与旧客户端使用的 camelCase 字段名。
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_serializer


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class PrincipalDTO(DTOBase):
    """调用方身份（由认证层提供）"""
    user_id: str
    licensee_id: str
    role: Optional[str] = None


class UploadRequestDTO(DTOBase):
    """直传协商请求"""
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., validation_alias=AliasChoices("file_name", "fileName"))
    content_type: str = Field(..., validation_alias=AliasChoices("content_type", "contentType"))
    file_size: int = Field(..., ge=0, validation_alias=AliasChoices("file_size", "fileSize"))
    category: str = Field(default="photography", validation_alias=AliasChoices("category", "serviceCategory"))
    media_kind: str = Field(
        default="raw",
        validation_alias=AliasChoices("media_kind", "media_type", "mediaType"),
    )


class UploadTargetDTO(DTOBase):
    """协商结果：直传地址或服务端中转标记"""
    storage_key: str
    upload_url: Optional[str] = None
    method: str = "PUT"
    headers: dict[str, str] = Field(default_factory=dict)
    content_type: str
    media_kind: str
    category: str
    expires_at: datetime
    transfer_mode: str = "direct"  # direct | server


class ProcessFileRequestDTO(DTOBase):
    """上传完成后的处理请求"""
    model_config = ConfigDict(populate_by_name=True)

    storage_key: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("storage_key", "storageKey", "s3Key", "firebasePath"),
    )
    file_name: str = Field(..., validation_alias=AliasChoices("file_name", "fileName", "originalName"))
    content_type: str = Field(..., validation_alias=AliasChoices("content_type", "contentType", "mimeType"))
    file_size: int = Field(..., ge=0, validation_alias=AliasChoices("file_size", "fileSize"))
    category: str = Field(default="photography", validation_alias=AliasChoices("category", "serviceCategory"))
    media_kind: str = Field(
        default="raw",
        validation_alias=AliasChoices("media_kind", "media_type", "mediaType"),
    )


class StoredFileDTO(DTOBase):
    id: int
    job_id: int
    file_name: str
    storage_key: str
    thumbnail_key: Optional[str] = None
    content_type: str
    file_size: int
    media_kind: str
    category: str
    uploader_id: str
    licensee_id: str
    uploaded_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(cls, stored_file: Any, **extra: Any):
        return cls(
            id=stored_file.id,
            job_id=stored_file.job_id,
            file_name=stored_file.file_name,
            storage_key=stored_file.storage_key,
            thumbnail_key=stored_file.thumbnail_key,
            content_type=stored_file.content_type,
            file_size=stored_file.file_size,
            media_kind=stored_file.media_kind.value,
            category=stored_file.category.value,
            uploader_id=stored_file.uploader_id,
            licensee_id=stored_file.licensee_id,
            uploaded_at=stored_file.uploaded_at,
            **extra,
        )


class StoredFileWithUrlsDTO(StoredFileDTO):
    url: Optional[str] = None
    thumbnail_url: Optional[str] = None


class ProcessResultDTO(DTOBase):
    success: bool = True
    content_item: StoredFileDTO
    thumbnail_generated: bool


class RelayUploadResultDTO(DTOBase):
    success: bool = True
    storage_key: str
    download_url: Optional[str] = None
    file_name: str
    file_size: int
    content_type: str
    thumbnail_generated: bool
    file: StoredFileDTO


class ChunkAcceptedDTO(DTOBase):
    success: bool = True
    session_id: str
    received: int
    total: int
    complete: bool = False
    result: Optional[RelayUploadResultDTO] = None


class DownloadLinkDTO(DTOBase):
    download_url: str
    file_name: str
    file_size: int
    content_type: str
    expires_in: int


class ActivityLogEntryDTO(DTOBase):
    id: int
    job_id: int
    actor_id: str
    action: str
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_entity(cls, entry: Any) -> "ActivityLogEntryDTO":
        return cls(
            id=entry.id,
            job_id=entry.job_id,
            actor_id=entry.actor_id,
            action=entry.action.value,
            description=entry.description,
            metadata=dict(entry.metadata),
            created_at=entry.created_at,
        )


class ReconciliationReportDTO(DTOBase):
    scanned_objects: int
    scanned_records: int
    orphan_objects: list[str] = Field(default_factory=list)
    dangling_records: list[int] = Field(default_factory=list)
