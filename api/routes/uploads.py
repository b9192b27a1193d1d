"""任务媒体上传相关路由。"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, UploadFile

from api.dependencies import (
    get_current_principal,
    get_post_upload_processor,
    get_relay_upload_service,
    get_upload_negotiator,
)
from application.dto import (
    ChunkAcceptedDTO,
    PrincipalDTO,
    ProcessFileRequestDTO,
    ProcessResultDTO,
    RelayUploadResultDTO,
    StoredFileDTO,
    UploadRequestDTO,
    UploadTargetDTO,
)
from application.services.post_upload_processor import PostUploadProcessor
from application.services.relay_upload_service import RelayUploadService
from application.services.upload_negotiator import UploadNegotiator
from core.response import Response as ApiResponse, success_response

router = APIRouter(
    prefix="/jobs/{job_id}",
    tags=["媒体上传"],
)


@router.post(
    "/upload-file",
    summary="中转上传单个文件",
    response_model=ApiResponse[RelayUploadResultDTO],
)
async def upload_file(
    job_id: int,
    file: UploadFile = File(..., description="要上传的文件"),
    category: str = Form("photography"),
    media_kind: str = Form("raw", alias="mediaType"),
    principal: PrincipalDTO = Depends(get_current_principal),
    service: RelayUploadService = Depends(get_relay_upload_service),
):
    """由应用服务器接收文件、写入存储并完成后处理。"""
    result = await service.upload_file(
        job_id,
        principal,
        file_name=file.filename or "upload.bin",
        content_type=file.content_type,
        size=file.size,
        read=file.read,
        category=category,
        media_kind=media_kind,
    )
    return success_response(data=result, message="文件上传成功")


@router.post(
    "/upload",
    summary="生成直传地址",
    response_model=ApiResponse[UploadTargetDTO],
)
@router.post(
    "/upload-url",
    summary="生成直传地址",
    response_model=ApiResponse[UploadTargetDTO],
)
async def negotiate_upload(
    job_id: int,
    payload: UploadRequestDTO,
    principal: PrincipalDTO = Depends(get_current_principal),
    negotiator: UploadNegotiator = Depends(get_upload_negotiator),
):
    target = await negotiator.negotiate(job_id, principal, payload)
    return success_response(data=target, message="上传地址生成成功")


@router.post(
    "/process-file",
    summary="直传完成后处理",
    response_model=ApiResponse[ProcessResultDTO],
)
async def process_file(
    job_id: int,
    payload: ProcessFileRequestDTO,
    principal: PrincipalDTO = Depends(get_current_principal),
    processor: PostUploadProcessor = Depends(get_post_upload_processor),
):
    outcome = await processor.process(job_id, principal, payload)
    return success_response(
        data=ProcessResultDTO(
            content_item=StoredFileDTO.from_entity(outcome.stored_file),
            thumbnail_generated=outcome.thumbnail_generated,
        ),
        message="文件处理完成",
    )


@router.post(
    "/upload-file-chunk",
    summary="分片中转上传",
    response_model=ApiResponse[ChunkAcceptedDTO],
)
async def upload_file_chunk(
    job_id: int,
    chunk: UploadFile = File(..., description="分片数据"),
    category: str = Form("photography"),
    media_kind: str = Form("raw", alias="mediaType"),
    content_type: Optional[str] = Form(None, alias="contentType"),
    content_range: Optional[str] = Header(None, alias="Content-Range"),
    file_name: Optional[str] = Header(None, alias="X-File-Name"),
    session_id: Optional[str] = Header(None, alias="X-Upload-Session"),
    principal: PrincipalDTO = Depends(get_current_principal),
    service: RelayUploadService = Depends(get_relay_upload_service),
):
    """按 Content-Range 接收分片；最后一个分片到达后合并并处理。"""
    accepted = await service.accept_chunk(
        job_id,
        principal,
        content_range=content_range,
        data=await chunk.read(),
        file_name=file_name or chunk.filename or "upload.bin",
        content_type=content_type,
        category=category,
        media_kind=media_kind,
        session_id=session_id,
    )
    message = "文件上传成功" if accepted.complete else "分片已接收"
    return success_response(data=accepted, message=message)
