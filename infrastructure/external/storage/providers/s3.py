"""AWS S3 storage provider implementation."""
import hashlib
from functools import partial
from typing import Any, NoReturn, Optional
from urllib.parse import quote

import anyio
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from core.logging_config import get_logger
from ..config import StorageConfig
from ..exceptions import (
    ConfigurationError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    TransientError,
)
from ..models import PresignedRequest, StorageObject, UploadResult

logger = get_logger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_DENIED_CODES = {"AccessDenied", "403", "InvalidAccessKeyId", "SignatureDoesNotMatch"}
_TRANSIENT_CODES = {"RequestTimeout", "SlowDown", "ServiceUnavailable", "InternalError", "500", "503"}


class S3Provider:
    """AWS S3 (or S3-compatible) storage provider."""

    def __init__(self, client: Any, config: StorageConfig):
        """Initialize S3 provider.

        Args:
            client: Boto3 S3 client instance
            config: Storage configuration
        """
        self.client = client
        self.config = config
        self.bucket = config.bucket
        self.region = config.region or "us-east-1"

    async def issue_upload_credential(
        self,
        key: str,
        content_type: str,
        expires_in: int,
        metadata: Optional[dict[str, str]] = None,
    ) -> PresignedRequest:
        """Presigned PUT bound to the key and content type.

        Metadata is signed into the URL, so the client must send the same
        ``x-amz-meta-*`` headers; they are returned in ``headers``.
        """
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key, "ContentType": content_type}
        headers = {"Content-Type": content_type}
        if metadata:
            params["Metadata"] = metadata
            headers.update({f"x-amz-meta-{k.lower()}": str(v) for k, v in metadata.items()})
        if self.config.s3_sse:
            params["ServerSideEncryption"] = self.config.s3_sse
            headers["x-amz-server-side-encryption"] = self.config.s3_sse

        try:
            url = await anyio.to_thread.run_sync(
                partial(
                    self.client.generate_presigned_url,
                    ClientMethod="put_object",
                    Params=params,
                    ExpiresIn=expires_in,
                )
            )
        except (BotoCoreError, ClientError) as e:
            self._handle_exception(e, f"presign upload {key}")
        return PresignedRequest(url=url, method="PUT", headers=headers, expires_in=expires_in)

    async def read_bytes(self, key: str) -> bytes:
        try:
            response = await anyio.to_thread.run_sync(
                partial(self.client.get_object, Bucket=self.bucket, Key=key)
            )
            body = response["Body"]
            try:
                data = await anyio.to_thread.run_sync(body.read)
            finally:
                await anyio.to_thread.run_sync(body.close)
        except (BotoCoreError, ClientError) as e:
            self._handle_exception(e, f"read {key}")
        logger.debug("s3_object_read", key=key, size=len(data))
        return data

    async def write_bytes(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> UploadResult:
        extra_args: dict[str, Any] = {}
        if content_type:
            extra_args["ContentType"] = content_type
        if metadata:
            extra_args["Metadata"] = {k: str(v) for k, v in metadata.items()}
        if self.config.s3_acl:
            extra_args["ACL"] = self.config.s3_acl
        if self.config.s3_sse:
            extra_args["ServerSideEncryption"] = self.config.s3_sse

        try:
            response = await anyio.to_thread.run_sync(
                partial(
                    self.client.put_object,
                    Bucket=self.bucket,
                    Key=key,
                    Body=data,
                    **extra_args,
                )
            )
        except (BotoCoreError, ClientError) as e:
            self._handle_exception(e, f"write {key}")

        # Prefer server ETag; multipart-style ETags are not plain md5
        etag = (response or {}).get("ETag", "").strip('"') or hashlib.md5(data).hexdigest()
        return UploadResult(
            key=key,
            etag=etag,
            size=len(data),
            content_type=content_type,
            url=self.public_url(key),
        )

    async def issue_download_credential(
        self,
        key: str,
        expires_in: int,
        filename: Optional[str] = None,
    ) -> PresignedRequest:
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if filename:
            params["ResponseContentDisposition"] = (
                f"attachment; filename*=UTF-8''{quote(filename)}"
            )
        try:
            url = await anyio.to_thread.run_sync(
                partial(
                    self.client.generate_presigned_url,
                    ClientMethod="get_object",
                    Params=params,
                    ExpiresIn=expires_in,
                )
            )
        except (BotoCoreError, ClientError) as e:
            self._handle_exception(e, f"presign download {key}")
        return PresignedRequest(url=url, method="GET", expires_in=expires_in)

    async def exists(self, key: str) -> bool:
        try:
            await anyio.to_thread.run_sync(
                partial(self.client.head_object, Bucket=self.bucket, Key=key)
            )
            return True
        except ClientError as e:
            if self._error_code(e) in _NOT_FOUND_CODES:
                return False
            self._handle_exception(e, f"exists {key}")
        except BotoCoreError as e:
            self._handle_exception(e, f"exists {key}")

    async def list_objects(self, prefix: str = "", limit: int = 1000) -> list[StorageObject]:
        """List up to ``limit`` objects, following continuation tokens."""
        objects: list[StorageObject] = []
        token: Optional[str] = None
        try:
            while len(objects) < limit:
                kwargs: dict[str, Any] = {
                    "Bucket": self.bucket,
                    "Prefix": prefix,
                    "MaxKeys": min(1000, limit - len(objects)),
                }
                if token:
                    kwargs["ContinuationToken"] = token
                response = await anyio.to_thread.run_sync(
                    partial(self.client.list_objects_v2, **kwargs)
                )
                for obj in response.get("Contents", []):
                    objects.append(StorageObject(
                        key=obj["Key"],
                        size=obj["Size"],
                        etag=obj.get("ETag", "").strip('"'),
                        last_modified=obj.get("LastModified"),
                    ))
                if not response.get("IsTruncated"):
                    break
                token = response.get("NextContinuationToken")
        except (BotoCoreError, ClientError) as e:
            self._handle_exception(e, f"list objects {prefix}")
        return objects

    def public_url(self, key: str) -> Optional[str]:
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{key}"
        if self.config.s3_acl == "public-read":
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
        # Private bucket, require presigned URL
        return None

    async def health_check(self) -> bool:
        try:
            await anyio.to_thread.run_sync(
                partial(self.client.head_bucket, Bucket=self.bucket)
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("s3_health_check_failed", bucket=self.bucket, error=str(e))
            return False
        logger.info("s3_health_check_passed", bucket=self.bucket)
        return True

    @staticmethod
    def _error_code(e: Exception) -> str:
        return str(getattr(e, "response", {}).get("Error", {}).get("Code", ""))

    def _handle_exception(self, e: Exception, operation: str) -> NoReturn:
        """Map S3 exceptions to storage exceptions."""
        if isinstance(e, EndpointConnectionError):
            raise TransientError(f"Endpoint unreachable during {operation}: {e}") from e

        code = self._error_code(e)
        if code in _NOT_FOUND_CODES:
            raise NotFoundError(f"Object not found: {operation}") from e
        if code in _DENIED_CODES:
            raise PermissionDeniedError(f"Access denied: {operation}") from e
        if code in _TRANSIENT_CODES or (isinstance(e, BotoCoreError) and not code):
            raise TransientError(f"Transient error during {operation}: {e}") from e
        raise StorageError(f"S3 error during {operation}: {e}") from e


async def build_s3_provider(config: StorageConfig) -> S3Provider:
    """Build S3 storage provider."""
    if not config.bucket:
        raise ConfigurationError("S3 bucket name is required")

    import boto3
    from botocore.config import Config as BotoConfig

    boto_config = BotoConfig(
        region_name=config.region,
        signature_version="s3v4",
        retries={
            "max_attempts": config.max_retry_attempts,
            "mode": "standard"
        },
        connect_timeout=config.timeout,
        read_timeout=config.timeout
    )

    client_args: dict[str, Any] = {"service_name": "s3", "config": boto_config}
    if config.aws_access_key_id and config.aws_secret_access_key:
        client_args.update({
            "aws_access_key_id": config.aws_access_key_id,
            "aws_secret_access_key": config.aws_secret_access_key
        })
    if config.endpoint:
        client_args["endpoint_url"] = config.endpoint
        client_args["use_ssl"] = config.enable_ssl

    client = boto3.client(**client_args)
    provider = S3Provider(client, config)

    if not await provider.health_check():
        raise ConfigurationError("Failed to connect to S3")
    return provider
