# marketchat/tests/unit/test_unit_of_work.py

from unittest.mock import AsyncMock, Mock

import pytest

from marketchat.infrastructure import models
from marketchat.infrastructure.data_mappers import ChatMapper, MessageReadMapper
from marketchat.infrastructure.uow import UnitOfWork, UoWModel


@pytest.fixture
def mock_session():
    """
    Provides a mocked AsyncSession for testing.
    """
    return AsyncMock()


@pytest.fixture
def uow(mock_session):
    """
    Initializes the UnitOfWork with a mocked ChatMapper.
    """
    uow = UnitOfWork(mock_session)
    chat_mapper = ChatMapper(mock_session)
    chat_mapper.insert = AsyncMock()
    chat_mapper.update = AsyncMock()
    chat_mapper.delete = AsyncMock()
    uow.mappers[models.Chat] = chat_mapper
    return uow


def make_chat(**kwargs):
    return models.Chat(participant_low="u1", participant_high="u2", context_key="", **kwargs)


@pytest.mark.asyncio
async def test_register_new_model(uow):
    chat = make_chat()
    uow_model = uow.register_new(chat)

    assert len(uow.new) == 1, "New models should be tracked in 'new'"
    assert id(chat) in uow.new
    assert isinstance(uow_model, UoWModel)


@pytest.mark.asyncio
async def test_modify_new_model_does_not_register_dirty(uow):
    chat = make_chat()
    uow_model = uow.register_new(chat)

    uow_model.status = "ended"

    assert len(uow.dirty) == 0, "'dirty' should remain empty for new models"
    assert id(chat) in uow.new


@pytest.mark.asyncio
async def test_register_existing_model_as_dirty(uow):
    chat = make_chat()

    uow_model = UoWModel(chat, uow)
    uow_model.status = "ended"

    assert id(chat) in uow.dirty, "Modified existing model should exist in 'dirty'"
    assert chat.status == "ended"


@pytest.mark.asyncio
async def test_register_deleted_model_removes_from_new_and_dirty(uow):
    new_chat = make_chat()
    uow_model = uow.register_new(new_chat)

    dirty_chat = make_chat()
    uow.register_dirty(dirty_chat)

    uow.register_deleted(uow_model)
    uow.register_deleted(dirty_chat)

    assert id(new_chat) not in uow.new
    assert id(new_chat) not in uow.deleted
    assert id(dirty_chat) not in uow.dirty
    assert id(dirty_chat) in uow.deleted


@pytest.mark.asyncio
async def test_commit_handles_multiple_operations(uow, mock_session):
    new_chat = make_chat()
    uow.register_new(new_chat)

    existing_chat = make_chat()
    uow.register_dirty(existing_chat)

    to_delete_chat = make_chat()
    uow.register_deleted(to_delete_chat)

    await uow.commit()

    uow.mappers[models.Chat].insert.assert_awaited_once_with(new_chat)
    uow.mappers[models.Chat].update.assert_awaited_once_with(existing_chat)
    uow.mappers[models.Chat].delete.assert_awaited_once_with(to_delete_chat)
    mock_session.flush.assert_awaited_once()
    mock_session.commit.assert_awaited_once()
    assert not uow.new and not uow.dirty and not uow.deleted


@pytest.mark.asyncio
async def test_rollback_discards_pending_changes(uow, mock_session):
    uow.register_new(make_chat())
    uow.register_dirty(make_chat())

    await uow.rollback()

    assert not uow.new and not uow.dirty
    mock_session.rollback.assert_awaited_once()
    uow.mappers[models.Chat].insert.assert_not_awaited()


@pytest.mark.asyncio
async def test_read_receipts_are_insert_only():
    mock_session = Mock()
    mapper = MessageReadMapper(mock_session)
    receipt = models.MessageRead(message_id="m1", user_id="u2")

    await mapper.insert(receipt)
    mock_session.add.assert_called_once_with(receipt)

    with pytest.raises(RuntimeError):
        await mapper.update(receipt)
    with pytest.raises(RuntimeError):
        await mapper.delete(receipt)
