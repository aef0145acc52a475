import pytest

from chat_fakes import FakeGenerator
from config import ATTACHMENT_LABEL, DEFAULT_MODEL_ID, GENERATION_ERROR_PREFIX
from db.models import Conversation, Message
from db.store import ConversationStore, ModelCatalog
from services.chat_stream import DONE, ChatStreamOrchestrator, ChatTurn
from services.errors import NotFoundError, PersistenceError, UpstreamGenerationError
from services.file_extractor import ExtractedFile
from services.gemini_client import GenerationResult


class FailingReplyStore(ConversationStore):
    """Accepts user messages, fails on the assistant reply."""

    def append_message(self, conversation_id, role, content, metadata=None, ai_model_id=None):
        if role == "assistant":
            raise PersistenceError("disk full")
        return super().append_message(conversation_id, role, content, metadata, ai_model_id)


def make(db, events=None, store_cls=ConversationStore, result=None):
    generator = FakeGenerator(events=events, result=result)
    orchestrator = ChatStreamOrchestrator(store_cls(db), ModelCatalog(db), generator)
    return orchestrator, generator


def messages(db, conversation_id):
    return db.query(Message).filter(Message.conversation_id == conversation_id).order_by(Message.id).all()


def test_basic_turn_streams_and_persists(db, models):
    orchestrator, generator = make(db)

    stream = orchestrator.start("alice", ChatTurn(message="Hello"))
    events = list(stream.events())

    assert events[0] == {"conversation_id": stream.conversation_id}
    assert events[1:] == [{"content": "Hello"}, {"content": " there"}, DONE]
    assert generator.calls[0] == ("stream", "Hello", [], None, False)

    user_msg, reply = messages(db, stream.conversation_id)
    assert (user_msg.role, user_msg.content) == ("user", "Hello")
    assert (reply.role, reply.content, reply.meta) == ("assistant", "Hello there", None)

    conv = db.get(Conversation, stream.conversation_id)
    assert conv.title == "Hello"
    assert conv.user_id == "alice"
    assert conv.ai_model_id == models["gemini-flash"]
    assert conv.last_message_at >= reply.created_at


@pytest.mark.parametrize(
    "message, title",
    [
        ("x" * 50, "x" * 50),
        ("x" * 51, "x" * 50 + "..."),
        ("短いメッセージ", "短いメッセージ"),
    ],
)
def test_new_conversation_title(db, message, title):
    orchestrator, _ = make(db)
    conv = orchestrator.resolve_conversation("alice", None, message)
    assert conv.title == title


def test_default_model_falls_back_without_active_models(db):
    orchestrator, _ = make(db)
    conv = orchestrator.resolve_conversation("alice", None, "hi")
    assert conv.ai_model_id == DEFAULT_MODEL_ID


def test_existing_conversation_is_reused(db):
    orchestrator, _ = make(db)
    first = orchestrator.start("alice", ChatTurn(message="one"))
    list(first.events())

    second = orchestrator.start("alice", ChatTurn(message="two", conversation_id=first.conversation_id))
    list(second.events())

    assert second.conversation_id == first.conversation_id
    assert [m.content for m in messages(db, first.conversation_id)] == ["one", "Hello there", "two", "Hello there"]


def test_other_users_conversation_is_not_found(db):
    orchestrator, _ = make(db)
    owned = orchestrator.start("alice", ChatTurn(message="secret"))
    list(owned.events())

    with pytest.raises(NotFoundError):
        orchestrator.start("bob", ChatTurn(message="peek", conversation_id=owned.conversation_id))
    assert len(messages(db, owned.conversation_id)) == 2


def test_unknown_conversation_creates_nothing(db):
    orchestrator, _ = make(db)
    with pytest.raises(NotFoundError):
        orchestrator.start("alice", ChatTurn(message="hi", conversation_id=999))
    assert db.query(Conversation).count() == 0
    assert db.query(Message).count() == 0


def test_last_grounding_snapshot_is_persisted(db):
    events = [
        {"text": "A"},
        {"grounding": {"sources": [{"title": "old", "uri": "u0"}], "search_queries": ["q0"]}},
        {"text": "B"},
        {"grounding": {"sources": [{"title": "new", "uri": "u1"}]}},
    ]
    orchestrator, _ = make(db, events=events)

    stream = orchestrator.start("alice", ChatTurn(message="cite", use_grounding=True))
    out = list(stream.events())

    assert [e for e in out if isinstance(e, dict) and "grounding" in e] == [
        {"grounding": events[1]["grounding"]},
        {"grounding": events[3]["grounding"]},
    ]
    reply = messages(db, stream.conversation_id)[-1]
    assert reply.content == "AB"
    assert reply.meta == {"grounding_sources": [{"title": "new", "uri": "u1"}]}


def test_empty_grounding_snapshot_does_not_erase(db):
    events = [{"grounding": {"search_queries": ["q"]}}, {"grounding": {}}, {"text": "x"}]
    orchestrator, _ = make(db, events=events)

    stream = orchestrator.start("alice", ChatTurn(message="m"))
    list(stream.events())

    assert messages(db, stream.conversation_id)[-1].meta == {"search_queries": ["q"]}


def test_upstream_error_is_rendered_as_content(db):
    events = [{"text": "par"}, {"error": UpstreamGenerationError("quota exceeded")}]
    orchestrator, _ = make(db, events=events)

    stream = orchestrator.start("alice", ChatTurn(message="m"))
    out = list(stream.events())

    error_text = GENERATION_ERROR_PREFIX + "quota exceeded"
    assert out[1:] == [{"content": "par"}, {"content": error_text}, DONE]
    reply = messages(db, stream.conversation_id)[-1]
    assert reply.content == "par" + error_text
    assert reply.meta == {"generation_error": "quota exceeded"}


def test_persistence_failure_ends_with_error_instead_of_done(db):
    orchestrator, _ = make(db, store_cls=FailingReplyStore)

    stream = orchestrator.start("alice", ChatTurn(message="m"))
    out = list(stream.events())

    assert out[0] == {"conversation_id": stream.conversation_id}
    assert out[1:3] == [{"content": "Hello"}, {"content": " there"}]
    assert out[-1] == {"error": "disk full"}
    assert DONE not in out
    assert [m.role for m in messages(db, stream.conversation_id)] == ["user"]


def test_client_disconnect_keeps_partial_reply_and_closes_upstream(db):
    orchestrator, generator = make(db, events=[{"text": "one"}, {"text": "two"}, {"text": "three"}])

    stream = orchestrator.start("alice", ChatTurn(message="m"))
    events = stream.events()
    assert next(events) == {"conversation_id": stream.conversation_id}
    assert next(events) == {"content": "one"}
    events.close()

    assert generator.closed
    reply = messages(db, stream.conversation_id)[-1]
    assert (reply.role, reply.content) == ("assistant", "one")


def test_disconnect_before_any_text_stores_no_reply(db):
    orchestrator, _ = make(db)
    stream = orchestrator.start("alice", ChatTurn(message="m"))
    events = stream.events()
    next(events)
    events.close()
    assert [m.role for m in messages(db, stream.conversation_id)] == ["user"]


def test_events_can_only_be_consumed_once(db):
    orchestrator, _ = make(db)
    stream = orchestrator.start("alice", ChatTurn(message="m"))
    list(stream.events())
    with pytest.raises(RuntimeError):
        list(stream.events())


def test_files_add_manifest_and_use_multimodal_path(db):
    orchestrator, generator = make(db)
    files = [
        ExtractedFile(type="text", content="body", filename="a.pdf"),
        ExtractedFile(type="image", content="aGk=", filename="b.png", mime_type="image/png"),
    ]
    history = [{"role": "user", "content": "earlier"}]

    stream = orchestrator.start("alice", ChatTurn(message="look", history=history, system_prompt="sp"), files)
    list(stream.events())

    assert messages(db, stream.conversation_id)[0].content == "look\n\n" + ATTACHMENT_LABEL + "a.pdf, b.png"
    name, message, sent_files, sent_history, system_prompt, grounding = generator.calls[0]
    assert name == "stream_with_files"
    assert message == "look"
    assert [f.filename for f in sent_files] == ["a.pdf", "b.png"]
    assert (sent_history, system_prompt, grounding) == (history, "sp", False)


def test_complete_persists_both_messages(db):
    orchestrator, generator = make(db, result=GenerationResult(success=True, text="Pong"))

    out = orchestrator.complete("alice", ChatTurn(message="Ping", history=[{"role": "user", "content": "h"}]))

    assert out["success"] is True
    assert out["message"] == "Pong"
    assert [m.content for m in messages(db, out["conversation_id"])] == ["Ping", "Pong"]
    assert generator.calls == [("generate", "Ping", [{"role": "user", "content": "h"}])]


def test_complete_failure_raises_and_stores_only_user_message(db):
    orchestrator, _ = make(db, result=GenerationResult(success=False, error="upstream down"))

    with pytest.raises(UpstreamGenerationError, match="upstream down"):
        orchestrator.complete("alice", ChatTurn(message="Ping"))
    assert [m.role for m in db.query(Message).all()] == ["user"]
