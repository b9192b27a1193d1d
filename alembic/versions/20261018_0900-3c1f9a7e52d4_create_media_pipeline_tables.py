"""create_media_pipeline_tables

Revision ID: 3c1f9a7e52d4
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3c1f9a7e52d4'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # job_cards 由预约侧维护；此处仅在独立部署时建表
    op.create_table(
        'job_cards',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('licensee_id', sa.String(length=64), nullable=False, comment='租户（licensee）ID'),
        sa.Column('property_address', sa.String(length=512), nullable=True, comment='物业地址'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='unassigned', comment='工单状态'),
        sa.Column('editor_id', sa.String(length=64), nullable=True, comment='编辑人员ID'),
        sa.Column('photographer_id', sa.String(length=64), nullable=True, comment='摄影师ID'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        comment='工单表，媒体流水线只读取并推进 status'
    )
    op.create_index('ix_job_cards_licensee_status', 'job_cards', ['licensee_id', 'status'], unique=False)

    op.create_table(
        'stored_files',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('job_id', sa.Integer(), nullable=False, comment='所属工单'),
        sa.Column('file_name', sa.String(length=255), nullable=False, comment='原始文件名'),
        sa.Column('storage_key', sa.String(length=1024), nullable=False, comment='对象存储Key'),
        sa.Column('thumbnail_key', sa.String(length=1024), nullable=True, comment='缩略图Key'),
        sa.Column('content_type', sa.String(length=100), nullable=False, comment='MIME类型（客户端声明）'),
        sa.Column('file_size', sa.BigInteger(), nullable=False, server_default='0', comment='文件大小（字节）'),
        sa.Column('media_kind', sa.String(length=16), nullable=False, comment='raw/finished'),
        sa.Column('category', sa.String(length=32), nullable=False, comment='服务类别'),
        sa.Column('uploader_id', sa.String(length=64), nullable=False, comment='上传者ID'),
        sa.Column('licensee_id', sa.String(length=64), nullable=False, comment='租户ID'),
        sa.Column('storage_type', sa.String(length=16), nullable=False, server_default='local', comment='存储类型：local/s3'),
        sa.Column('bucket', sa.String(length=255), nullable=True, comment='存储桶'),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='上传时间'),
        sa.ForeignKeyConstraint(['job_id'], ['job_cards.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        comment='工单媒体文件元数据'
    )
    op.create_index('ix_stored_files_job_uploaded', 'stored_files', ['job_id', 'uploaded_at'], unique=False)
    op.create_index('ix_stored_files_storage_key', 'stored_files', ['storage_key'], unique=False)

    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('job_id', sa.Integer(), nullable=False, comment='所属工单'),
        sa.Column('actor_id', sa.String(length=64), nullable=False, comment='操作人ID'),
        sa.Column('action', sa.String(length=32), nullable=False, comment='upload/download/status_change'),
        sa.Column('description', sa.Text(), nullable=False, comment='描述'),
        sa.Column('metadata', postgresql.JSON(astext_type=sa.Text()), nullable=True, comment='扩展元数据（JSON）'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.ForeignKeyConstraint(['job_id'], ['job_cards.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        comment='工单活动日志'
    )
    op.create_index('ix_activity_logs_job_created', 'activity_logs', ['job_id', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_activity_logs_job_created', table_name='activity_logs')
    op.drop_table('activity_logs')
    op.drop_index('ix_stored_files_storage_key', table_name='stored_files')
    op.drop_index('ix_stored_files_job_uploaded', table_name='stored_files')
    op.drop_table('stored_files')
    op.drop_index('ix_job_cards_licensee_status', table_name='job_cards')
    op.drop_table('job_cards')
