"""Job card database model (table shared with the booking side)."""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, text
from sqlalchemy.sql import func

from .base import Base


class JobCardModel(Base):
    """ORM mapping for job_cards table."""

    __tablename__ = "job_cards"
    __table_args__ = (
        Index("ix_job_cards_licensee_status", "licensee_id", "status"),
        {"comment": "工单表，媒体流水线只读取并推进 status"},
    )

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    licensee_id = Column(String(64), nullable=False, comment="租户（licensee）ID")
    property_address = Column(String(512), nullable=True, comment="物业地址")
    status = Column(
        String(32),
        nullable=False,
        default="unassigned",
        server_default=text("'unassigned'"),
        comment="工单状态",
    )
    editor_id = Column(String(64), nullable=True, comment="编辑人员ID")
    photographer_id = Column(String(64), nullable=True, comment="摄影师ID")
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        comment="创建时间",
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        onupdate=func.now(),
        comment="更新时间",
    )

    def __repr__(self) -> str:
        return f"<JobCardModel(id={self.id}, status='{self.status}')>"
