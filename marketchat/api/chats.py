# marketchat/api/chats.py

from fastapi import APIRouter, Depends, Query

from marketchat.api.dependencies import (
    get_chat_interactor,
    get_config,
    get_current_user,
    get_message_interactor,
    page_size,
)
from marketchat.config import AppConfig
from marketchat.infrastructure import schemas
from marketchat.interactors.chat_interactor import ChatInteractor
from marketchat.interactors.message_interactor import MessageInteractor

router = APIRouter()


@router.get("", response_model=list[schemas.ChatSummary])
async def read_chats(
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    return await chat_interactor.get_chats(current_user.id)


@router.post("", response_model=schemas.Chat)
async def create_chat(
    chat: schemas.ChatCreate,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    return await chat_interactor.find_or_create_chat(current_user.id, chat)


@router.get("/{chat_id}", response_model=schemas.Chat)
async def read_chat(
    chat_id: str,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    return await chat_interactor.get_chat(chat_id, current_user.id)


@router.get("/{chat_id}/messages", response_model=schemas.MessagePage)
async def read_messages(
    chat_id: str,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    config: AppConfig = Depends(get_config),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    return await message_interactor.get_messages(
        chat_id, current_user.id, page=page, limit=page_size(limit, config)
    )


@router.post("/{chat_id}/messages", response_model=schemas.Message, status_code=201)
async def create_message(
    chat_id: str,
    message: schemas.MessageCreate,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    return await message_interactor.send_message(chat_id, current_user.id, message)


@router.post("/{chat_id}/read", response_model=schemas.ReadReceiptBatch)
async def mark_chat_read(
    chat_id: str,
    message_interactor: MessageInteractor = Depends(get_message_interactor),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    return await message_interactor.mark_read(chat_id, current_user.id)


@router.put("/{chat_id}/end", response_model=schemas.Chat)
async def end_chat(
    chat_id: str,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    return await chat_interactor.end_chat(chat_id, current_user.id)


@router.post("/{chat_id}/report", response_model=schemas.Chat)
async def report_chat(
    chat_id: str,
    report: schemas.ReportRequest,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    return await chat_interactor.report_chat(chat_id, current_user.id, report.reason)


@router.delete("/{chat_id}", response_model=schemas.Chat)
async def delete_chat(
    chat_id: str,
    chat_interactor: ChatInteractor = Depends(get_chat_interactor),
    current_user: schemas.CurrentUser = Depends(get_current_user),
):
    return await chat_interactor.delete_chat(chat_id, current_user.id)
