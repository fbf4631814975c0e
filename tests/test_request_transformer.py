"""Tests for Anthropic -> upstream request conversion."""

import pytest

from glmt_proxy.config import map_model
from glmt_proxy.locale_enforcer import LOCALE_DIRECTIVE
from glmt_proxy.request_transformer import RequestTransformer, sanitize_messages


@pytest.fixture
def transformer():
    return RequestTransformer(enforce_locale=False)


def user(content):
    return {"role": "user", "content": content}


class TestSanitizeMessages:
    def test_string_content_passes_through(self):
        messages = [user("hi"), {"role": "assistant", "content": "hello"}]
        assert sanitize_messages(messages) == messages

    def test_single_text_block_collapses(self):
        messages = [user([{"type": "text", "text": "hi"}])]
        assert sanitize_messages(messages) == [user("hi")]

    def test_multiple_text_blocks_stay_a_list(self):
        blocks = [{"type": "text", "text": "a"}, {"type": "image", "source": {}}, {"type": "text", "text": "b"}]
        result = sanitize_messages([user(blocks)])
        assert result[0]["content"] == [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]

    def test_no_text_blocks_becomes_empty_string(self):
        blocks = [{"type": "tool_result", "tool_use_id": "t1", "content": "out"}]
        assert sanitize_messages([user(blocks)]) == [user("")]

    def test_thinking_blocks_dropped(self):
        blocks = [{"type": "thinking", "thinking": "hmm"}, {"type": "text", "text": "answer"}]
        result = sanitize_messages([{"role": "assistant", "content": blocks}])
        assert result == [{"role": "assistant", "content": "answer"}]

    def test_non_list_content_becomes_empty_string(self):
        assert sanitize_messages([{"role": "user", "content": None}]) == [user("")]

    def test_idempotent(self):
        messages = [
            user([{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]),
            user([{"type": "tool_use", "id": "t", "name": "x", "input": {}}]),
            user("plain"),
        ]
        once = sanitize_messages(messages)
        assert sanitize_messages(once) == once


class TestControlTags:
    def test_thinking_off(self, transformer):
        outbound, config = transformer.transform_request({"messages": [user("<Thinking:Off> implement the login form")]})
        assert config.enabled is False
        assert config.source == "tag"
        assert "reasoning" not in outbound
        assert "reasoning_effort" not in outbound

    def test_thinking_on_with_effort(self, transformer):
        outbound, config = transformer.transform_request(
            {"messages": [user("<thinking:on> <EFFORT:HIGH> list files")]}
        )
        assert (config.enabled, config.effort) == (True, "high")
        assert outbound["reasoning"] is True
        assert outbound["reasoning_effort"] == "high"

    def test_effort_tag_alone_enables_thinking(self, transformer):
        _, config = transformer.transform_request({"messages": [user("<Effort:Low> list files")]})
        assert config.enabled is True
        assert config.effort == "low"

    def test_last_tag_wins_by_default(self, transformer):
        messages = [
            user("<Thinking:On> first"),
            {"role": "assistant", "content": "ok"},
            user("<Thinking:Off> second"),
        ]
        _, config = transformer.transform_request({"messages": messages})
        assert config.enabled is False

    def test_first_tag_policy(self):
        transformer = RequestTransformer(enforce_locale=False, tag_policy="first")
        _, config = transformer.transform_request(
            {"messages": [user("<Thinking:On> a <Thinking:Off> b")]}
        )
        assert config.enabled is True

    def test_tags_in_text_blocks(self, transformer):
        messages = [user([{"type": "text", "text": "<Thinking:Off>"}, {"type": "text", "text": "go"}])]
        _, config = transformer.transform_request({"messages": messages})
        assert config.enabled is False

    def test_tags_in_assistant_messages_ignored(self, transformer):
        messages = [
            {"role": "assistant", "content": "<Thinking:Off>"},
            user("implement the login form"),
        ]
        _, config = transformer.transform_request({"messages": messages})
        assert config.enabled is True
        assert config.source == "default"

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            RequestTransformer(tag_policy="middle")


class TestClassifierFallback:
    def test_execution_prompt_disables_reasoning(self, transformer):
        outbound, config = transformer.transform_request({"messages": [user("run the tests")]})
        assert config.enabled is False
        assert "reasoning" not in outbound

    def test_latest_user_prompt_is_classified(self, transformer):
        messages = [
            user("ultrathink about this"),
            {"role": "assistant", "content": "done"},
            user("list files"),
        ]
        _, config = transformer.transform_request({"messages": messages})
        assert config.source == "classifier:execution"

    def test_empty_user_message_skipped(self, transformer):
        messages = [user("think harder"), user([{"type": "tool_result", "tool_use_id": "t", "content": "x"}])]
        _, config = transformer.transform_request({"messages": messages})
        assert config.effort == "high"

    def test_default_thinking_disabled(self):
        transformer = RequestTransformer(default_thinking=False, enforce_locale=False)
        outbound, config = transformer.transform_request({"messages": [user("implement the login form")]})
        assert config.enabled is False
        assert "reasoning" not in outbound

    def test_locale_directive_does_not_trigger_classifier(self):
        transformer = RequestTransformer(enforce_locale=True)
        _, config = transformer.transform_request({"messages": [user("implement the login form")]})
        assert config.source == "default"


class TestOutboundShape:
    @pytest.mark.parametrize(
        "model,expected",
        [
            ("claude-sonnet-4-5-20250929", "GLM-4.6"),
            ("claude-3-5-haiku-latest", "GLM-4.5-Air"),
            ("claude-opus-4", "GLM-4.6"),
            ("glm-4.5-air", "GLM-4.5-Air"),
            ("GLM-4.5", "GLM-4.5"),
            ("something-else", "GLM-4.6"),
            (None, "GLM-4.6"),
        ],
    )
    def test_model_mapping(self, model, expected):
        assert map_model(model) == expected

    def test_max_tokens_capped_per_model(self, transformer):
        outbound, _ = transformer.transform_request(
            {"model": "glm-4.5-air", "max_tokens": 32000, "messages": [user("hi")]}
        )
        assert outbound["max_tokens"] == 16000

    def test_client_max_tokens_ignored(self, transformer):
        outbound, _ = transformer.transform_request(
            {"model": "claude-opus-4", "max_tokens": 1024, "messages": [user("hi")]}
        )
        assert outbound["max_tokens"] == 128000

    def test_missing_max_tokens_uses_model_cap(self, transformer):
        outbound, _ = transformer.transform_request({"model": "glm-4.5", "messages": [user("hi")]})
        assert outbound["max_tokens"] == 96000

    def test_stream_forced_off(self, transformer):
        outbound, _ = transformer.transform_request({"stream": True, "messages": [user("hi")]})
        assert outbound["stream"] is False

    def test_sampling_parameters_copied(self, transformer):
        outbound, _ = transformer.transform_request(
            {"temperature": 0.2, "top_p": 0.9, "messages": [user("hi")]}
        )
        assert outbound["temperature"] == 0.2
        assert outbound["top_p"] == 0.9
        assert outbound["do_sample"] is True

    def test_sampling_parameters_omitted(self, transformer):
        outbound, _ = transformer.transform_request({"messages": [user("hi")]})
        assert "temperature" not in outbound
        assert "top_p" not in outbound
        assert outbound["do_sample"] is True

    def test_system_hoisted(self, transformer):
        outbound, _ = transformer.transform_request({"system": "be terse", "messages": [user("hi")]})
        assert outbound["messages"][0] == {"role": "system", "content": "be terse"}
        assert outbound["messages"][1] == user("hi")

    def test_locale_directive_applied(self):
        transformer = RequestTransformer()
        outbound, _ = transformer.transform_request({"system": "be terse", "messages": [user("hi")]})
        assert outbound["messages"][0]["content"] == f"{LOCALE_DIRECTIVE}\n\nbe terse"
        assert outbound["messages"][1] == user("hi")

    def test_text_only_conversation_preserved(self, transformer):
        messages = [user("a"), {"role": "assistant", "content": "b"}, user("c")]
        outbound, _ = transformer.transform_request({"messages": messages})
        assert outbound["messages"] == messages

    def test_input_not_mutated(self, transformer):
        request = {"system": "s", "messages": [user([{"type": "text", "text": "x"}])]}
        transformer.transform_request(request)
        assert request == {"system": "s", "messages": [user([{"type": "text", "text": "x"}])]}


class TestFailureFallback:
    def test_missing_messages_forwards_original(self, transformer):
        request = {"model": "claude-sonnet-4-5", "prompt": "legacy"}
        outbound, config = transformer.transform_request(request)
        assert outbound == request
        assert config.enabled is False
        assert config.source == "fallback"
        assert config.error

    def test_non_object_payload_forwarded(self, transformer):
        outbound, config = transformer.transform_request([1, 2, 3])
        assert outbound == [1, 2, 3]
        assert config.source == "fallback"
