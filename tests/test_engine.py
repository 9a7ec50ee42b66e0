"""End-to-end tests for the MemoryEngine facade."""

import pytest

from chat_memory.config import MemoryEngineConfig
from chat_memory.engine import MemoryEngine, build_adapter
from chat_memory.storage import (
    EncryptedDocumentStore,
    InMemoryDocumentStore,
    JsonDocumentStore,
)
from chat_memory.storage.keys import profile_key


class TestBuildAdapter:
    def test_memory_backend_by_default(self):
        assert isinstance(build_adapter(MemoryEngineConfig()), InMemoryDocumentStore)

    def test_json_backend(self, tmp_path):
        config = MemoryEngineConfig(storage={"backend": "json", "base_path": str(tmp_path)})
        assert isinstance(build_adapter(config), JsonDocumentStore)

    def test_encryption_wraps_backend(self, tmp_path):
        config = MemoryEngineConfig(
            storage={
                "backend": "json",
                "base_path": str(tmp_path),
                "encryption_key": EncryptedDocumentStore.generate_key(),
            }
        )
        assert isinstance(build_adapter(config), EncryptedDocumentStore)


class TestConversationSummary:
    @pytest.mark.asyncio
    async def test_empty_history(self, engine):
        summary = await engine.get_conversation_summary("u1", "s1")
        assert summary == "No conversation history available."

    @pytest.mark.asyncio
    async def test_summary_fields(self, engine, make_message):
        await engine.add_message("u1", "s1", make_message("python basics"))
        await engine.add_message("u1", "s1", make_message("python answer", role="assistant"))

        summary = await engine.get_conversation_summary("u1", "s1")

        assert summary == (
            "Conversation with user: 1 user messages, 1 assistant responses. "
            "Topics discussed: python, basics, answer. "
            "Current topic: python. "
            "User engagement: low."
        )

    @pytest.mark.asyncio
    async def test_summary_uses_profile_name(self, engine, make_message):
        await engine.update_profile("u1", "s1", name="Ada")
        await engine.add_message("u1", "s1", make_message("hello there"))

        summary = await engine.get_conversation_summary("u1", "s1")
        assert summary.startswith("Conversation with Ada: ")


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_chat_turn_flow(self, engine, make_message):
        await engine.add_message("u1", "s1", make_message("Could you please explain python?"))
        reply = await engine.add_message(
            "u1", "s1", make_message("Python is a language.", role="assistant")
        )
        await engine.record_feedback("u1", "s1", reply.id, 5)

        prompt = await engine.generate_contextual_prompt("u1", "s1", "And decorators?")

        assert prompt.startswith("You are ChatKing AI, an advanced AI assistant. ")
        assert "Maintain a professional and formal tone. " in prompt
        assert "Current topic: python. " in prompt
        assert "user: Could you please explain python?\n" in prompt
        assert "assistant: Python is a language.\n" in prompt
        assert "Effective approaches: Response style that received 5/5 satisfaction. " in prompt
        assert prompt.endswith("\nUser message: And decorators?")

    @pytest.mark.asyncio
    async def test_prompt_generation_does_not_write_after_creation(self, engine, adapter):
        await engine.get_or_create("u1", "s1")
        adapter.writes.clear()

        await engine.generate_contextual_prompt("u1", "s1", "hi")

        assert adapter.writes == []

    @pytest.mark.asyncio
    async def test_json_backend_survives_restart(self, tmp_path, make_message):
        config = MemoryEngineConfig(storage={"backend": "json", "base_path": str(tmp_path)})
        first = MemoryEngine.from_config(config)
        await first.add_message("u1", "s1", make_message("I work as a pilot"))

        second = MemoryEngine.from_config(config)
        context = await second.get_or_create("u1", "s1")

        assert [m.content for m in context.conversation_history] == ["I work as a pilot"]
        assert context.long_term_memory.personal_facts[0].fact == "I work as a pilot"

    @pytest.mark.asyncio
    async def test_json_backend_keeps_similar_user_ids_apart(self, tmp_path):
        config = MemoryEngineConfig(storage={"backend": "json", "base_path": str(tmp_path)})
        engine = MemoryEngine.from_config(config)
        await engine.update_profile("alice bob", "s1", name="Alice")
        engine.store.clear_cache()

        context = await engine.get_or_create("alice_bob", "s1")

        assert context.user_profile.id == "alice_bob"
        assert context.user_profile.name == ""

    @pytest.mark.asyncio
    async def test_prompt_from_cached_session_sees_profile_edit(self, engine):
        await engine.get_or_create("u1", "s2")
        await engine.update_profile("u1", "s1", name="Ada")

        prompt = await engine.generate_contextual_prompt("u1", "s2", "hi")

        assert "You are talking to Ada. " in prompt

    @pytest.mark.asyncio
    async def test_user_memory_shared_across_sessions(self, engine, make_message):
        await engine.add_message("u1", "s1", make_message("astronomy telescopes"))

        other = await engine.get_or_create("u1", "s2")

        topics = [t.topic for t in other.long_term_memory.frequent_topics]
        assert topics == ["astronomy", "telescopes"]
        assert other.conversation_history == []

    @pytest.mark.asyncio
    async def test_update_preferences_round_trip(self, engine, adapter):
        await engine.update_preferences("u1", "s1", adapt_to_style=False)
        engine.invalidate("u1", "s1")

        context = await engine.get_or_create("u1", "s1")

        assert context.user_preferences.adapt_to_style is False
        assert profile_key("u1") in adapter

    @pytest.mark.asyncio
    async def test_cache_stats(self, engine):
        await engine.get_or_create("u1", "s1")
        await engine.get_or_create("u1", "s1")

        stats = engine.get_cache_stats()

        assert stats["size"] == 1
        assert stats["capacity"] == 100
        assert stats["hits"] >= 1
        assert stats["policy"] == "fifo"
