"""Tests for conversation storage."""

from companion_chat import conversations
from companion_chat.models import ChatTurn


def _turns(user: str, reply: str = "好的") -> list[ChatTurn]:
    return [ChatTurn(role="user", content=user), ChatTurn(role="assistant", content=reply)]


def test_create_starts_empty(store):
    conversation = conversations.create_conversation(store, "c1")
    assert conversation.id.startswith("conv_")
    assert conversation.messages == []
    assert conversation.title is None
    assert conversations.get_conversation(store, conversation.id) == conversation


def test_append_sets_title_from_first_user_turn(store):
    conversation = conversations.create_conversation(store, "c1")
    conversations.append_turns(store, conversation.id, _turns("我们去看海吧"))
    conversations.append_turns(store, conversation.id, _turns("再见"))

    stored = conversations.get_conversation(store, conversation.id)
    assert [t.content for t in stored.messages] == ["我们去看海吧", "好的", "再见", "好的"]
    assert stored.title == "我们去看海吧"
    assert stored.last_message_at >= conversation.last_message_at


def test_append_to_unknown_conversation(store):
    assert conversations.append_turns(store, "missing", _turns("hi")) is None


def test_list_newest_first_and_filtered(store):
    old = conversations.create_conversation(store, "c1")
    other = conversations.create_conversation(store, "c2")
    conversations.append_turns(store, old.id, _turns("hi"))

    assert [c.id for c in conversations.list_conversations(store)] == [old.id, other.id]
    assert [c.id for c in conversations.list_conversations(store, "c2")] == [other.id]


def test_delete(store):
    conversation = conversations.create_conversation(store, "c1")
    assert conversations.delete_conversation(store, conversation.id) is True
    assert conversations.list_conversations(store) == []
    assert conversations.delete_conversation(store, conversation.id) is False
