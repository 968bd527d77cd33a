from datetime import datetime, timezone

import pytest

from notes_backend.api.core import NotesFacade, build_share_url
from notes_backend.api.errors import DuplicateUser, InvalidCredentials, NotAuthenticated, NotFound, ValidationError
from notes_database.store import MemoryStore


@pytest.fixture
def alice(facade):
    return facade.sign_up("alice@example.com", "alicepassword123")

@pytest.fixture
def bob(facade):
    return facade.sign_up("bob@example.com", "bobpassword456")


def test_sign_up_duplicate_leaves_users_unchanged(facade, store, alice):
    users_before, _ = store.load()
    with pytest.raises(DuplicateUser):
        facade.sign_up("alice@example.com", "another-password")
    users_after, _ = store.load()
    assert users_after == users_before

def test_password_is_not_stored_in_plaintext(store, alice):
    raw = store.users_path.read_text()
    assert "alicepassword123" not in raw
    users, _ = store.load()
    assert users[0].password_hash.startswith("$pbkdf2-sha256$")

def test_sign_up_normalizes_email_domain(facade):
    session = facade.sign_up("Carol@Example.COM", "carolpassword")
    assert session.user.email == "Carol@example.com"
    assert facade.sign_in("Carol@Example.COM", "carolpassword").user.id == session.user.id
    assert facade.sign_in("Carol@example.com", "carolpassword").user.id == session.user.id
    with pytest.raises(DuplicateUser):
        facade.sign_up("Carol@EXAMPLE.com", "carolpassword")

def test_sign_up_rejects_invalid_email(facade):
    with pytest.raises(ValidationError):
        facade.sign_up("not-an-email", "password123")

def test_sign_in_with_invalid_email(facade, alice):
    with pytest.raises(InvalidCredentials):
        facade.sign_in("not-an-email", "alicepassword123")

def test_sign_in(facade, alice):
    session = facade.sign_in("alice@example.com", "alicepassword123")
    assert session.user.id == alice.user.id
    assert session.access_token != alice.access_token
    with pytest.raises(InvalidCredentials):
        facade.sign_in("alice@example.com", "wrong")
    with pytest.raises(InvalidCredentials):
        facade.sign_in("nobody@example.com", "alicepassword123")

def test_sessions_are_independent(facade, alice, bob):
    assert facade.current_user(alice.access_token).email == "alice@example.com"
    assert facade.current_user(bob.access_token).email == "bob@example.com"

def test_sign_out(facade, alice):
    facade.sign_out(alice.access_token)
    with pytest.raises(NotAuthenticated):
        facade.current_user(alice.access_token)
    assert facade.get_notes(alice.access_token) == []
    # signing out twice or with junk is harmless
    facade.sign_out(alice.access_token)
    facade.sign_out("junk")
    facade.sign_out(None)

def test_get_notes_without_session_is_empty(facade, alice):
    facade.create_note(alice.access_token, "mine", "")
    assert facade.get_notes(None) == []
    assert facade.get_notes("junk") == []

def test_create_note(facade, alice):
    before = datetime.now(timezone.utc)
    note = facade.create_note(alice.access_token, "Title", "Content")
    notes = facade.get_notes(alice.access_token)
    assert len(notes) == 1
    stored = notes[0]
    assert stored.id == note.id
    assert stored.title == "Title"
    assert stored.content == "Content"
    assert stored.shared is False
    assert stored.user_id == alice.user.id
    assert stored.created_at >= before

def test_notes_keep_storage_order(facade, alice):
    ids = [facade.create_note(alice.access_token, f"n{i}").id for i in range(3)]
    assert [n.id for n in facade.get_notes(alice.access_token)] == ids

def test_mutations_require_session(facade, alice):
    note = facade.create_note(alice.access_token, "x")
    with pytest.raises(NotAuthenticated):
        facade.create_note(None, "x")
    with pytest.raises(NotAuthenticated):
        facade.update_note(None, note.id, {"title": "y"})
    with pytest.raises(NotAuthenticated):
        facade.delete_note(None, note.id)
    with pytest.raises(NotAuthenticated):
        facade.toggle_note_sharing(None, note.id)

def test_update_changes_only_given_fields(facade, alice):
    note = facade.create_note(alice.access_token, "Old", "Keep me")
    updated = facade.update_note(alice.access_token, note.id, {"title": "X"})
    assert updated.title == "X"
    assert updated.content == "Keep me"
    assert updated.created_at == note.created_at
    assert updated.shared is False
    assert facade.get_notes(alice.access_token)[0].title == "X"

def test_update_without_session_is_not_authenticated_before_field_checks(facade, alice):
    note = facade.create_note(alice.access_token, "x")
    with pytest.raises(NotAuthenticated):
        facade.update_note(None, note.id, {"bogus": 1})
    with pytest.raises(NotAuthenticated):
        facade.update_note(None, "missing", {"bogus": 1})

def test_update_rejects_unknown_or_invalid_fields(facade, alice):
    note = facade.create_note(alice.access_token, "Old")
    with pytest.raises(ValidationError):
        facade.update_note(alice.access_token, note.id, {"user_id": "someone-else"})
    with pytest.raises(ValidationError):
        facade.update_note(alice.access_token, note.id, {"title": None})
    assert facade.get_notes(alice.access_token)[0].title == "Old"

def test_update_other_users_note_is_not_found(facade, alice, bob):
    note = facade.create_note(alice.access_token, "private")
    with pytest.raises(NotFound):
        facade.update_note(bob.access_token, note.id, {"title": "hax"})
    with pytest.raises(NotFound):
        facade.update_note(alice.access_token, "missing", {"title": "x"})

def test_delete_note(facade, alice):
    keep = facade.create_note(alice.access_token, "keep")
    gone = facade.create_note(alice.access_token, "gone")
    facade.delete_note(alice.access_token, gone.id)
    assert [n.id for n in facade.get_notes(alice.access_token)] == [keep.id]

def test_delete_foreign_note_is_a_no_op(facade, alice, bob):
    note = facade.create_note(alice.access_token, "alice's")
    bobs = facade.create_note(bob.access_token, "bob's")
    facade.delete_note(bob.access_token, note.id)
    assert [n.id for n in facade.get_notes(alice.access_token)] == [note.id]
    assert [n.id for n in facade.get_notes(bob.access_token)] == [bobs.id]

def test_toggle_sharing_twice_restores_flag(facade, alice, bob):
    note = facade.create_note(alice.access_token, "share me", "body")
    assert facade.get_shared_note(note.id) is None

    shared = facade.toggle_note_sharing(alice.access_token, note.id)
    assert shared.shared is True
    # any caller, authenticated or not, can read it now
    assert facade.get_shared_note(note.id).content == "body"

    unshared = facade.toggle_note_sharing(alice.access_token, note.id)
    assert unshared.shared is False
    assert facade.get_shared_note(note.id) is None

    with pytest.raises(NotFound):
        facade.toggle_note_sharing(bob.access_token, note.id)

def test_get_shared_note_unknown_id(facade):
    assert facade.get_shared_note("missing") is None

def test_build_share_url():
    assert build_share_url("http://localhost:3000/", "abc") == "http://localhost:3000/share/abc"
    assert build_share_url("https://notes.example.com", "abc") == "https://notes.example.com/share/abc"

def test_facade_on_memory_store(sessions):
    facade = NotesFacade(MemoryStore(), sessions)
    session = facade.sign_up("carol@example.com", "carolpassword")
    facade.create_note(session.access_token, "in memory")
    assert [n.title for n in facade.get_notes(session.access_token)] == ["in memory"]

def test_facade_on_sql_store(sql_store, sessions):
    facade = NotesFacade(sql_store, sessions)
    session = facade.sign_up("dave@example.com", "davepassword")
    note = facade.create_note(session.access_token, "in sql", "x")
    facade.toggle_note_sharing(session.access_token, note.id)
    assert facade.get_shared_note(note.id).title == "in sql"
    with pytest.raises(DuplicateUser):
        facade.sign_up("dave@example.com", "other")
