"""媒体查询与下载路由。"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import (
    get_activity_log_service,
    get_current_principal,
    get_media_access_service,
)
from application.dto import (
    ActivityLogEntryDTO,
    DownloadLinkDTO,
    PrincipalDTO,
    StoredFileWithUrlsDTO,
)
from application.services.activity_log_service import ActivityLogService
from application.services.media_access_service import MediaAccessService
from core.response import Response as ApiResponse, success_response

router = APIRouter(tags=["媒体访问"])


@router.get(
    "/job-cards/{job_id}/files",
    summary="任务文件列表",
    response_model=ApiResponse[list[StoredFileWithUrlsDTO]],
)
async def list_job_files(
    job_id: int,
    media_kind: Optional[str] = Query(None, alias="mediaType"),
    category: Optional[str] = Query(None, alias="serviceCategory"),
    principal: PrincipalDTO = Depends(get_current_principal),
    service: MediaAccessService = Depends(get_media_access_service),
):
    items = await service.list_job_files(
        job_id, principal, media_kind=media_kind, category=category
    )
    return success_response(data=items)


@router.get(
    "/files/{file_id}/download",
    summary="获取下载地址",
    response_model=ApiResponse[DownloadLinkDTO],
)
async def download_file(
    file_id: int,
    principal: PrincipalDTO = Depends(get_current_principal),
    service: MediaAccessService = Depends(get_media_access_service),
):
    link = await service.issue_download(file_id, principal)
    return success_response(data=link)


@router.get(
    "/jobs/{job_id}/activity",
    summary="任务活动记录",
    response_model=ApiResponse[list[ActivityLogEntryDTO]],
)
async def list_job_activity(
    job_id: int,
    limit: int = Query(100, ge=1, le=500),
    principal: PrincipalDTO = Depends(get_current_principal),
    service: ActivityLogService = Depends(get_activity_log_service),
):
    entries = await service.list_for_job(job_id, limit=limit)
    return success_response(data=entries)
