"""
Unit tests for chat and message persistence.
"""

import asyncio

import pytest

from expressive_chat.utils.auth import get_password_hash


@pytest.fixture
async def owners(user_storage):
    """Two users; returns their ids."""
    password_hash = get_password_hash("secret123")
    alice = await user_storage.create_user("alice@example.com", password_hash)
    bob = await user_storage.create_user("bob@example.com", password_hash)
    return alice.id, bob.id


class TestChats:

    @pytest.mark.asyncio
    async def test_create_chat_with_title(self, chat_storage, owners):
        alice, _ = owners
        chat = await chat_storage.create_chat(alice, "Trip planning")
        assert chat.user_id == alice
        assert chat.title == "Trip planning"
        assert chat.created_at is not None

    @pytest.mark.asyncio
    async def test_empty_title_gets_localised_placeholder(self, chat_storage, owners):
        alice, _ = owners
        english = await chat_storage.create_chat(alice, "")
        french = await chat_storage.create_chat(alice, "   ", language="fr")
        assert english.title == "New Conversation"
        assert french.title == "Nouvelle discussion"

    @pytest.mark.asyncio
    async def test_list_chats_newest_first_and_owner_only(self, chat_storage, owners):
        alice, bob = owners
        first = await chat_storage.create_chat(alice, "first")
        second = await chat_storage.create_chat(alice, "second")
        await chat_storage.create_chat(bob, "bob's")

        chats = await chat_storage.list_chats(alice)
        assert [c.id for c in chats] == [second.id, first.id]
        assert all(c.user_id == alice for c in chats)

    @pytest.mark.asyncio
    async def test_get_chat_filters_by_owner(self, chat_storage, owners):
        alice, bob = owners
        chat = await chat_storage.create_chat(alice, "mine")
        assert (await chat_storage.get_chat(chat.id, alice)).id == chat.id
        assert await chat_storage.get_chat(chat.id, bob) is None

    @pytest.mark.asyncio
    async def test_delete_chat_removes_messages(self, chat_storage, owners):
        alice, _ = owners
        chat = await chat_storage.create_chat(alice, "doomed")
        await chat_storage.append_message(chat.id, "user", "Hello")
        await chat_storage.append_message(chat.id, "model", "Hi!")

        assert await chat_storage.delete_chat(chat.id, alice) is True
        assert await chat_storage.list_messages(chat.id) == []
        assert chat.id not in [c.id for c in await chat_storage.list_chats(alice)]

    @pytest.mark.asyncio
    async def test_delete_foreign_or_missing_chat_is_noop(self, chat_storage, owners):
        alice, bob = owners
        chat = await chat_storage.create_chat(alice, "keep me")
        await chat_storage.append_message(chat.id, "user", "Hello")

        assert await chat_storage.delete_chat(chat.id, bob) is False
        assert await chat_storage.delete_chat(999999, alice) is False
        assert await chat_storage.delete_chat(chat.id, bob) is False

        assert len(await chat_storage.list_messages(chat.id)) == 1
        assert (await chat_storage.get_chat(chat.id, alice)) is not None


class TestMessages:

    @pytest.mark.asyncio
    async def test_append_and_list_in_order(self, chat_storage, owners):
        alice, _ = owners
        chat = await chat_storage.create_chat(alice, "log")
        sent = []
        for i in range(5):
            role = "user" if i % 2 == 0 else "model"
            sent.append(await chat_storage.append_message(chat.id, role, f"message {i}"))

        messages = await chat_storage.list_messages(chat.id)
        assert [m.id for m in messages] == [m.id for m in sent]
        assert [m.text for m in messages] == [f"message {i}" for i in range(5)]
        assert messages[0].role == "user"
        assert messages[1].role == "model"

    @pytest.mark.asyncio
    async def test_image_data_is_stored_verbatim(self, chat_storage, owners):
        alice, _ = owners
        chat = await chat_storage.create_chat(alice, "pics")
        data_uri = "data:image/png;base64,AAAA"
        await chat_storage.append_message(chat.id, "user", "look", data_uri)

        (message,) = await chat_storage.list_messages(chat.id)
        assert message.image_data == data_uri
        assert message.timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_total_and_ordered(self, chat_storage, owners):
        alice, _ = owners
        chat = await chat_storage.create_chat(alice, "busy")

        results = await asyncio.gather(*[
            chat_storage.append_message(chat.id, "user", f"m{i}") for i in range(20)
        ])

        messages = await chat_storage.list_messages(chat.id)
        ids = [m.id for m in messages]
        assert sorted(ids) == sorted(r.id for r in results)
        assert len(set(ids)) == len(ids) == 20
        timestamps = [m.timestamp for m in messages]
        assert timestamps == sorted(timestamps)

    @pytest.mark.asyncio
    async def test_messages_are_scoped_to_their_chat(self, chat_storage, owners):
        alice, bob = owners
        mine = await chat_storage.create_chat(alice, "mine")
        theirs = await chat_storage.create_chat(bob, "theirs")
        await chat_storage.append_message(mine.id, "user", "for alice")
        await chat_storage.append_message(theirs.id, "user", "for bob")

        assert [m.text for m in await chat_storage.list_messages(mine.id)] == ["for alice"]
