import io
import unittest
from types import SimpleNamespace
from unittest.mock import patch
from urllib import error

from backend import llm_provider
from backend.errors import InvocationError
from backend.llm_provider import (
    GeminiRestBackend,
    GeminiRestModel,
    InvocationStrategy,
    ModelCandidate,
    extract_text,
    invoke,
)


class FakeHandle:
    def __init__(self, name, behaviours):
        self.name = name
        self.behaviours = behaviours
        self.calls = []

    def supports(self, strategy):
        return strategy in self.behaviours

    def invoke(self, strategy, prompt, generation_config=None):
        self.calls.append(strategy)
        behaviour = self.behaviours[strategy]
        if isinstance(behaviour, Exception):
            raise behaviour
        return behaviour


def _http_error(code, body):
    return error.HTTPError(
        url="https://example.invalid",
        code=code,
        msg="error",
        hdrs=None,
        fp=io.BytesIO(body.encode("utf-8")),
    )


class TestInvocationAdapter(unittest.TestCase):
    def test_uses_first_present_strategy(self):
        handle = FakeHandle(
            "models/a",
            {
                InvocationStrategy.GENERATE_CONTENT: {"ok": 1},
                InvocationStrategy.GENERATE_TEXT: {"ok": 2},
            },
        )

        strategy, result = invoke(handle, "prompt")

        self.assertEqual(strategy, InvocationStrategy.GENERATE_CONTENT)
        self.assertEqual(result, {"ok": 1})
        self.assertEqual(handle.calls, [InvocationStrategy.GENERATE_CONTENT])

    def test_moves_to_next_strategy_only_after_failure(self):
        handle = FakeHandle(
            "models/a",
            {
                InvocationStrategy.GENERATE_CONTENT: RuntimeError("unsupported"),
                InvocationStrategy.GENERATE_MESSAGE: {"ok": 3},
            },
        )
        attempts = []

        strategy, result = invoke(handle, "prompt", attempts=attempts)

        self.assertEqual(strategy, InvocationStrategy.GENERATE_MESSAGE)
        self.assertEqual(result, {"ok": 3})
        self.assertEqual([attempt.method for attempt in attempts], ["generateContent", "generateMessage"])
        self.assertFalse(attempts[0].outcome.ok)
        self.assertTrue(attempts[1].outcome.ok)

    def test_no_recognized_operation_fails(self):
        with self.assertRaises(InvocationError) as ctx:
            invoke(FakeHandle("models/a", {}), "prompt")

        self.assertIn("No supported generation method", ctx.exception.message)

    def test_all_operations_failing_keeps_last_error(self):
        handle = FakeHandle(
            "models/a",
            {
                InvocationStrategy.GENERATE_CONTENT: RuntimeError("first"),
                InvocationStrategy.GENERATE_TEXT: RuntimeError("second"),
            },
        )

        with self.assertRaises(InvocationError) as ctx:
            invoke(handle, "prompt")

        self.assertEqual(ctx.exception.message, "second")


class TestTextNormalization(unittest.TestCase):
    def test_nested_response_with_text_operation(self):
        result = SimpleNamespace(response=SimpleNamespace(text=lambda: " Answer "))

        self.assertEqual(extract_text(result), "Answer")

    def test_nested_response_with_async_text_operation(self):
        async def _text():
            return "Async answer"

        result = SimpleNamespace(response=SimpleNamespace(text=_text))

        self.assertEqual(extract_text(result), "Async answer")

    def test_nested_response_without_text_operation_is_stringified(self):
        result = {"response": "plain response"}

        self.assertEqual(extract_text(result), "plain response")

    def test_output_array_shape(self):
        result = {"output": [{"content": [{"text": "From output"}]}]}

        self.assertEqual(extract_text(result), "From output")

    def test_output_array_without_text_is_empty(self):
        self.assertEqual(extract_text({"output": []}), "")

    def test_rest_generate_content_collects_all_parts(self):
        payload = {"candidates": [{"content": {"parts": [{"text": "Teil 1"}, {"text": "Teil 2"}]}}]}

        self.assertEqual(extract_text(payload), "Teil 1\nTeil 2")

    def test_rest_generate_text_and_message_shapes(self):
        self.assertEqual(extract_text({"candidates": [{"output": "text-bison"}]}), "text-bison")
        self.assertEqual(extract_text({"candidates": [{"author": "1", "content": "chat-bison"}]}), "chat-bison")

    def test_blocked_rest_payload_is_empty_rather_than_dumped(self):
        payload = {"promptFeedback": {"blockReason": "SAFETY"}}

        self.assertEqual(extract_text(payload), "")

    def test_fallback_stringifies_whole_result(self):
        self.assertEqual(extract_text(42), "42")


class TestGeminiRestBackend(unittest.TestCase):
    def test_generate_content_posts_prompt_and_config(self):
        captured = {}

        def _fake_post_json(url, payload, _headers, timeout=60.0):
            captured["url"] = url
            captured["payload"] = payload
            captured["timeout"] = timeout
            return {"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}

        model = GeminiRestModel(name="models/gemini-2.5-flash", api_key="test-key", base_url="https://api.test/v1beta", timeout=5)
        with patch("backend.llm_provider._post_json", side_effect=_fake_post_json):
            result = model.invoke(InvocationStrategy.GENERATE_CONTENT, "Hello", {"temperature": 0.2})

        self.assertEqual(extract_text(result), "ok")
        self.assertTrue(captured["url"].startswith("https://api.test/v1beta/models/gemini-2.5-flash:generateContent?key="))
        self.assertEqual(captured["payload"]["contents"][0]["parts"][0]["text"], "Hello")
        self.assertEqual(captured["payload"]["generationConfig"], {"temperature": 0.2})
        self.assertEqual(captured["timeout"], 5)

    def test_generate_text_payload_uses_prompt_text(self):
        captured = {}

        def _fake_post_json(url, payload, _headers, timeout=60.0):
            captured["payload"] = payload
            return {"candidates": [{"output": "ok"}]}

        model = GeminiRestModel(name="models/text-bison-001", api_key="k", base_url="https://api.test")
        with patch("backend.llm_provider._post_json", side_effect=_fake_post_json):
            model.invoke(InvocationStrategy.GENERATE_TEXT, "Hello", {"temperature": 0.2, "maxOutputTokens": 10})

        self.assertEqual(captured["payload"], {"prompt": {"text": "Hello"}, "temperature": 0.2})

    def test_http_error_becomes_invocation_error_with_api_message(self):
        model = GeminiRestModel(name="models/missing", api_key="k", base_url="https://api.test")
        body = '{"error": {"message": "models/missing is not found"}}'

        with patch("backend.llm_provider._post_json", side_effect=_http_error(404, body)):
            with self.assertRaises(InvocationError) as ctx:
                model.invoke(InvocationStrategy.GENERATE_CONTENT, "Hello")

        self.assertIn("HTTP 404", ctx.exception.message)
        self.assertIn("models/missing is not found", ctx.exception.message)

    def test_timeout_becomes_invocation_error(self):
        model = GeminiRestModel(name="models/slow", api_key="k", base_url="https://api.test")

        with patch("backend.llm_provider._post_json", side_effect=TimeoutError("timed out")):
            with self.assertRaises(InvocationError) as ctx:
                model.invoke(InvocationStrategy.GENERATE_CONTENT, "Hello")

        self.assertIn("timed out", ctx.exception.message)

    def test_static_handle_exposes_all_strategies_discovered_only_listed(self):
        backend = GeminiRestBackend(api_key="k", base_url="https://api.test")

        static = backend.get_model(ModelCandidate("gemini-2.5-flash"))
        discovered = backend.get_model(ModelCandidate("models/text-bison-001", ("generateText",)))

        self.assertEqual(static.name, "models/gemini-2.5-flash")
        self.assertTrue(all(static.supports(strategy) for strategy in llm_provider.STRATEGY_ORDER))
        self.assertFalse(discovered.supports(InvocationStrategy.GENERATE_CONTENT))
        self.assertTrue(discovered.supports(InvocationStrategy.GENERATE_TEXT))

    def test_list_models_follows_page_tokens(self):
        pages = [
            {
                "models": [
                    {"name": "models/gemini-2.5-flash", "supportedGenerationMethods": ["generateContent"]},
                    {"name": "models/embedding-001", "supportedGenerationMethods": ["embedContent"]},
                ],
                "nextPageToken": "next",
            },
            {"models": [{"name": "models/text-bison-001", "displayName": "PaLM 2"}]},
        ]
        urls = []

        def _fake_get_json(url, timeout=60.0):
            urls.append(url)
            return pages[len(urls) - 1]

        backend = GeminiRestBackend(api_key="k", base_url="https://api.test")
        with patch("backend.llm_provider._get_json", side_effect=_fake_get_json):
            models = backend.list_models()

        self.assertEqual([model.name for model in models], ["models/gemini-2.5-flash", "models/embedding-001", "models/text-bison-001"])
        self.assertIn("pageToken=next", urls[1])
        self.assertEqual([model.supports_generation for model in models], [True, False, True])

    def test_list_models_http_error_is_invocation_error(self):
        backend = GeminiRestBackend(api_key="bad", base_url="https://api.test")

        with patch("backend.llm_provider._get_json", side_effect=_http_error(403, "forbidden")):
            with self.assertRaises(InvocationError) as ctx:
                backend.list_models()

        self.assertIn("HTTP 403", ctx.exception.message)

    def test_list_models_non_object_body_is_invocation_error(self):
        backend = GeminiRestBackend(api_key="k", base_url="https://api.test")

        with patch("backend.llm_provider._get_json", return_value=["models/gemini-2.5-flash"]):
            with self.assertRaises(InvocationError) as ctx:
                backend.list_models()

        self.assertIn("unexpected response shape", ctx.exception.message)


if __name__ == "__main__":
    unittest.main()
