"""Activity log database model."""
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func

from .base import Base


class ActivityLogModel(Base):
    """ORM mapping for activity_logs table (append-only)."""

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_job_created", "job_id", "created_at"),
        {"comment": "工单活动日志"},
    )

    id = Column(Integer, primary_key=True, autoincrement=True, comment="主键ID")
    job_id = Column(
        Integer,
        ForeignKey("job_cards.id", ondelete="CASCADE"),
        nullable=False,
        comment="所属工单",
    )
    actor_id = Column(String(64), nullable=False, comment="操作人ID")
    action = Column(String(32), nullable=False, comment="upload/download/status_change")
    description = Column(Text, nullable=False, comment="描述")
    extra_metadata = Column("metadata", JSON, nullable=True, default=dict, comment="扩展元数据（JSON）")
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        comment="创建时间",
    )

    def __repr__(self) -> str:
        return f"<ActivityLogModel(id={self.id}, job_id={self.job_id}, action='{self.action}')>"
