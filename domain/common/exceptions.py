"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class UploadValidationException(DomainValidationException):
    """Upload request rejected before any bytes are stored."""


class ContentRangeInvalidException(BusinessException):
    def __init__(self, message: str, *, header: Optional[str] = None):
        super().__init__(
            code=BusinessCode.CONTENT_RANGE_INVALID,
            message=message,
            error_type="ValidationError",
            details={"content_range": header} if header is not None else None,
            field="Content-Range",
        )


class JobCardNotFoundException(BusinessException):
    def __init__(self, job_id: int):
        super().__init__(
            code=BusinessCode.JOB_NOT_FOUND,
            message=f"Job card {job_id} not found",
            error_type="NotFound",
            details={"job_id": job_id},
        )


class StoredFileNotFoundException(BusinessException):
    def __init__(self, file_id: int):
        super().__init__(
            code=BusinessCode.FILE_NOT_FOUND,
            message=f"File {file_id} not found",
            error_type="NotFound",
            details={"file_id": file_id},
        )


class FileAccessForbiddenException(BusinessException):
    def __init__(self, file_id: int):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message="Access denied",
            error_type="Forbidden",
            details={"file_id": file_id},
        )


class StorageNotConfiguredException(BusinessException):
    def __init__(self, message: str = "Storage backend is not configured"):
        super().__init__(
            code=BusinessCode.STORAGE_NOT_CONFIGURED,
            message=message,
            error_type="ConfigurationError",
        )


class StorageOperationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        transient: bool = False,
        missing: bool = False,
    ):
        details = {"operation": operation, "key": key, "transient": transient, "missing": missing}
        super().__init__(
            code=BusinessCode.STORAGE_ERROR,
            message=message,
            error_type="StorageError",
            details=details,
        )
        self.operation = operation
        self.key = key
        self.transient = transient
        self.missing = missing


class UploadCapacityExceededException(BusinessException):
    def __init__(self, waited: float = 0.0, *, reason: str = "admission_timeout"):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Upload capacity exhausted, retry later",
            error_type="ServiceUnavailable",
            details={"waited_seconds": waited, "reason": reason},
        )
