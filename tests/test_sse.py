from chat_fakes import FakeGenerator
from db.models import Message
from db.store import ConversationStore, ModelCatalog
from services.chat_stream import ChatStreamOrchestrator, ChatTurn
from services.sse import format_event, sse_response, stream_body


def test_frames():
    assert format_event("[DONE]") == "data: [DONE]\n\n"
    assert format_event({"content": "héllo"}) == 'data: {"content": "héllo"}\n\n'


def test_disconnect_finishes_the_turn_before_releasing_the_session(db):
    generator = FakeGenerator(events=[{"text": "one"}, {"text": "two"}])
    stream = ChatStreamOrchestrator(ConversationStore(db), ModelCatalog(db), generator).start(
        "alice", ChatTurn(message="m"),
    )
    closed = []

    def release():
        replies = db.query(Message).filter(Message.role == "assistant").all()
        closed.append((generator.closed, [m.content for m in replies]))

    body = stream_body(stream.events(), on_close=release)
    assert next(body).startswith('data: {"conversation_id"')
    assert next(body) == 'data: {"content": "one"}\n\n'
    body.close()

    assert closed == [(True, ["one"])]


def test_exhausted_body_releases_once():
    closed = []
    body = stream_body(iter([{"content": "a"}, "[DONE]"]), on_close=lambda: closed.append(True))
    assert list(body) == ['data: {"content": "a"}\n\n', "data: [DONE]\n\n"]
    assert closed == [True]


def test_response_headers():
    resp = sse_response(iter(()))
    assert resp.media_type == "text/event-stream"
    assert resp.headers["x-accel-buffering"] == "no"
    assert resp.headers["cache-control"] == "no-cache"
