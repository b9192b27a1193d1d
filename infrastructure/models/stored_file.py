"""Stored media file database model."""
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.sql import func

from .base import Base


class StoredFileModel(Base):
    """ORM mapping for stored_files table.

    ``storage_key`` is deliberately not unique: processing the same upload
    twice yields two rows.
    """

    __tablename__ = "stored_files"
    __table_args__ = (
        Index("ix_stored_files_job_uploaded", "job_id", "uploaded_at"),
        Index("ix_stored_files_storage_key", "storage_key"),
        {"comment": "工单媒体文件元数据"},
    )

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    job_id = Column(
        Integer,
        ForeignKey("job_cards.id", ondelete="CASCADE"),
        nullable=False,
        comment="所属工单",
    )
    file_name = Column(String(255), nullable=False, comment="原始文件名")
    storage_key = Column(String(1024), nullable=False, comment="对象存储Key")
    thumbnail_key = Column(String(1024), nullable=True, comment="缩略图Key")
    content_type = Column(String(100), nullable=False, comment="MIME类型（客户端声明）")
    file_size = Column(
        BigInteger,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="文件大小（字节）",
    )
    media_kind = Column(String(16), nullable=False, comment="raw/finished")
    category = Column(String(32), nullable=False, comment="服务类别")
    uploader_id = Column(String(64), nullable=False, comment="上传者ID")
    licensee_id = Column(String(64), nullable=False, comment="租户ID")
    storage_type = Column(
        String(16),
        nullable=False,
        default="local",
        server_default=text("'local'"),
        comment="存储类型：local/s3",
    )
    bucket = Column(String(255), nullable=True, comment="存储桶")
    uploaded_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        comment="上传时间",
    )

    def __repr__(self) -> str:
        return f"<StoredFileModel(id={self.id}, job_id={self.job_id}, key='{self.storage_key}')>"
