"""Tests for the persistence adapters."""

import json

import pytest
from cryptography.fernet import Fernet

from chat_memory.core.exceptions import StorageError
from chat_memory.core.interfaces import PersistenceAdapter, ReadStatus
from chat_memory.core.models import (
    LongTermMemory,
    PersonalFact,
    TopicFrequency,
    UserMemoryPreferences,
    UserProfile,
)
from chat_memory.storage import (
    EncryptedDocumentStore,
    InMemoryDocumentStore,
    JsonDocumentStore,
    longterm_key,
    preferences_key,
    profile_key,
    session_key,
)


def test_logical_keys():
    assert session_key("u1", "s1") == "memory/u1/s1"
    assert profile_key("u1") == "memory/u1/profile"
    assert longterm_key("u1") == "memory/u1/longterm"
    assert preferences_key("u1") == "memory/u1/preferences"


@pytest.fixture(params=["memory", "json", "encrypted"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryDocumentStore()
    if request.param == "json":
        return JsonDocumentStore(tmp_path)
    return EncryptedDocumentStore(
        InMemoryDocumentStore(), EncryptedDocumentStore.generate_key()
    )


class TestAdapterContract:
    def test_is_persistence_adapter(self, any_store):
        assert isinstance(any_store, PersistenceAdapter)

    @pytest.mark.asyncio
    async def test_missing_key_is_not_found(self, any_store):
        result = await any_store.read("memory/u1/profile")
        assert result.status is ReadStatus.NOT_FOUND
        assert result.document is None

    @pytest.mark.asyncio
    async def test_user_documents_round_trip(self, any_store):
        profile = UserProfile(id="u1", name="Ada", interests=["math", "engines"])
        profile.communication_style.formality = "formal"
        long_term = LongTermMemory(
            frequent_topics=[TopicFrequency(topic="math", count=3, user_expertise=0.3)],
            personal_facts=[PersonalFact(fact="I work on engines")],
        )
        preferences = UserMemoryPreferences(adapt_to_style=False, memory_retention_days=30)

        await any_store.write(profile_key("u1"), profile.model_dump(mode="json"))
        await any_store.write(longterm_key("u1"), long_term.model_dump(mode="json"))
        await any_store.write(preferences_key("u1"), preferences.model_dump(mode="json"))

        loaded_profile = await any_store.read(profile_key("u1"))
        loaded_long_term = await any_store.read(longterm_key("u1"))
        loaded_preferences = await any_store.read(preferences_key("u1"))

        assert UserProfile.model_validate(loaded_profile.document) == profile
        assert LongTermMemory.model_validate(loaded_long_term.document) == long_term
        assert (
            UserMemoryPreferences.model_validate(loaded_preferences.document)
            == preferences
        )

    @pytest.mark.asyncio
    async def test_overwrite_replaces_document(self, any_store):
        await any_store.write("memory/u1/s1", {"version": 1})
        await any_store.write("memory/u1/s1", {"version": 2})
        result = await any_store.read("memory/u1/s1")
        assert result.document == {"version": 2}


class TestInMemoryDocumentStore:
    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self):
        store = InMemoryDocumentStore()
        document = {"items": [1]}
        await store.write("k", document)
        document["items"].append(2)

        result = await store.read("k")
        result.document["items"].append(3)

        assert (await store.read("k")).document == {"items": [1]}
        assert "k" in store
        assert store.keys() == ["k"]


class TestJsonDocumentStore:
    @pytest.mark.asyncio
    async def test_file_layout(self, tmp_path):
        store = JsonDocumentStore(tmp_path)
        await store.write("memory/u1/profile", {"id": "u1"})
        path = tmp_path / "memory" / "u1" / "profile.json"
        assert json.loads(path.read_text(encoding="utf-8")) == {"id": "u1"}

    @pytest.mark.asyncio
    async def test_unsafe_segments_are_encoded(self, tmp_path):
        store = JsonDocumentStore(tmp_path)
        await store.write("memory/../evil/a:b", {"ok": True})
        assert (tmp_path / "memory" / "%2E%2E" / "evil" / "a%3Ab.json").exists()
        assert (await store.read("memory/../evil/a:b")).document == {"ok": True}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "first, second",
        [
            ("alice bob", "alice_bob"),
            ("a:b", "a_b"),
            (".", "_"),
            ("%2E", "."),
        ],
    )
    async def test_similar_ids_get_separate_files(self, tmp_path, first, second):
        store = JsonDocumentStore(tmp_path)
        await store.write(profile_key(first), {"id": first})
        await store.write(profile_key(second), {"id": second})

        assert (await store.read(profile_key(first))).document == {"id": first}
        assert (await store.read(profile_key(second))).document == {"id": second}

    @pytest.mark.asyncio
    async def test_empty_segment_rejected(self, tmp_path):
        store = JsonDocumentStore(tmp_path)
        with pytest.raises(StorageError):
            await store.write("memory//profile", {"id": "x"})

    @pytest.mark.asyncio
    async def test_corrupted_file_restored_from_backup(self, tmp_path):
        store = JsonDocumentStore(tmp_path)
        await store.write("memory/u1/profile", {"name": "first"})
        await store.write("memory/u1/profile", {"name": "second"})

        path = tmp_path / "memory" / "u1" / "profile.json"
        path.write_text("{not json", encoding="utf-8")

        result = await store.read("memory/u1/profile")
        assert result.status is ReadStatus.FOUND
        assert result.document == {"name": "first"}

    @pytest.mark.asyncio
    async def test_corrupted_file_without_backup_is_backend_error(self, tmp_path):
        store = JsonDocumentStore(tmp_path, create_backup=False)
        await store.write("memory/u1/profile", {"name": "first"})
        (tmp_path / "memory" / "u1" / "profile.json").write_text("{", encoding="utf-8")

        result = await store.read("memory/u1/profile")
        assert result.status is ReadStatus.BACKEND_ERROR
        assert isinstance(result.error, StorageError)

    @pytest.mark.asyncio
    async def test_unserializable_document_raises(self, tmp_path):
        store = JsonDocumentStore(tmp_path)
        with pytest.raises(StorageError):
            await store.write("memory/u1/profile", {"bad": object()})
        assert not list((tmp_path / "memory" / "u1").glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        store = JsonDocumentStore(tmp_path)
        await store.write("memory/u1/s1", {"a": 1})
        await store.write("memory/u1/s1", {"a": 2})

        assert await store.delete("memory/u1/s1") is True
        assert await store.delete("memory/u1/s1") is False
        assert (await store.read("memory/u1/s1")).status is ReadStatus.NOT_FOUND


class TestEncryptedDocumentStore:
    @pytest.mark.asyncio
    async def test_inner_store_only_sees_ciphertext(self):
        inner = InMemoryDocumentStore()
        store = EncryptedDocumentStore(inner, EncryptedDocumentStore.generate_key())

        await store.write("memory/u1/profile", {"name": "Ada Lovelace"})

        raw = (await inner.read("memory/u1/profile")).document
        assert set(raw) == {"ciphertext"}
        assert "Ada" not in raw["ciphertext"]
        assert (await store.read("memory/u1/profile")).document == {
            "name": "Ada Lovelace"
        }

    @pytest.mark.asyncio
    async def test_wrong_key_is_backend_error(self):
        inner = InMemoryDocumentStore()
        writer = EncryptedDocumentStore(inner, EncryptedDocumentStore.generate_key())
        reader = EncryptedDocumentStore(inner, EncryptedDocumentStore.generate_key())
        await writer.write("memory/u1/profile", {"name": "Ada"})

        result = await reader.read("memory/u1/profile")
        assert result.status is ReadStatus.BACKEND_ERROR

    @pytest.mark.asyncio
    async def test_plain_document_is_backend_error(self):
        inner = InMemoryDocumentStore()
        await inner.write("memory/u1/profile", {"name": "Ada"})
        store = EncryptedDocumentStore(inner, EncryptedDocumentStore.generate_key())

        result = await store.read("memory/u1/profile")
        assert result.status is ReadStatus.BACKEND_ERROR

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [b"{not json", b"[1, 2]", b"\xff\xfe"])
    async def test_non_document_payload_is_backend_error(self, payload):
        key = EncryptedDocumentStore.generate_key()
        inner = InMemoryDocumentStore()
        token = Fernet(key).encrypt(payload).decode("ascii")
        await inner.write("memory/u1/profile", {"ciphertext": token})

        result = await EncryptedDocumentStore(inner, key).read("memory/u1/profile")

        assert result.status is ReadStatus.BACKEND_ERROR
        assert isinstance(result.error, StorageError)

    @pytest.mark.asyncio
    async def test_encrypted_json_files(self, tmp_path):
        key = EncryptedDocumentStore.generate_key()
        store = EncryptedDocumentStore(JsonDocumentStore(tmp_path), key)
        await store.write("memory/u1/longterm", {"frequent_topics": []})

        text = (tmp_path / "memory" / "u1" / "longterm.json").read_text(encoding="utf-8")
        assert "frequent_topics" not in text
        reopened = EncryptedDocumentStore(JsonDocumentStore(tmp_path), key)
        assert (await reopened.read("memory/u1/longterm")).document == {
            "frequent_topics": []
        }
