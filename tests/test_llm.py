"""Tests for timetable_pipeline.llm and timetable_pipeline.embeddings (no network)."""

from __future__ import annotations

import os
import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import openai

from timetable_pipeline import llm
from timetable_pipeline.embeddings import OpenAIEmbedder
from timetable_pipeline.utils import EmbeddingUnavailableError, StructuringError

REPLY = '{"teacher_name": "Ms. Sarah Johnson", "time_blocks": []}'


@patch("timetable_pipeline.llm.time.sleep")
class TestCompleteJson(unittest.TestCase):
    @patch.dict(os.environ, {}, clear=True)
    def test_nothing_configured(self, _sleep: MagicMock) -> None:
        self.assertFalse(llm.is_configured())
        with self.assertRaises(StructuringError):
            llm.complete_json("system", "user")

    @patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}, clear=True)
    @patch("timetable_pipeline.llm._call_openai")
    def test_fenced_reply_parsed(self, mock_call: MagicMock, _sleep: MagicMock) -> None:
        mock_call.return_value = f"```json\n{REPLY}\n```"
        data = llm.complete_json("system", "user", model="gpt-test")
        self.assertEqual(data["teacher_name"], "Ms. Sarah Johnson")
        mock_call.assert_called_once_with("system", "user", "gpt-test")

    @patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}, clear=True)
    @patch("timetable_pipeline.llm._call_openai")
    def test_retries_invalid_json(self, mock_call: MagicMock, mock_sleep: MagicMock) -> None:
        mock_call.side_effect = ["not json", "[1, 2]", REPLY]
        data = llm.complete_json("system", "user", max_retries=2)
        self.assertEqual(data["time_blocks"], [])
        self.assertEqual(mock_call.call_count, 3)
        self.assertEqual([c.args[0] for c in mock_sleep.call_args_list], [1.0, 2.0])

    @patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test", "ANTHROPIC_API_KEY": "sk-ant"}, clear=True)
    @patch("timetable_pipeline.llm._call_anthropic", return_value=REPLY)
    @patch("timetable_pipeline.llm._call_openai", side_effect=openai.OpenAIError("quota"))
    def test_falls_back_to_anthropic(
        self, mock_openai: MagicMock, mock_anthropic: MagicMock, _sleep: MagicMock
    ) -> None:
        data = llm.complete_json("system", "user", max_retries=1)
        self.assertEqual(data["teacher_name"], "Ms. Sarah Johnson")
        self.assertEqual(mock_openai.call_count, 2)
        mock_anthropic.assert_called_once()

    @patch.dict(os.environ, {"ANTHROPIC_API_KEY": "sk-ant"}, clear=True)
    @patch("timetable_pipeline.llm._call_anthropic", return_value="I cannot help with that")
    def test_all_backends_fail(self, _call: MagicMock, _sleep: MagicMock) -> None:
        with self.assertRaises(StructuringError) as ctx:
            llm.complete_json("system", "user", max_retries=0)
        self.assertIn("anthropic:", str(ctx.exception))


class TestOpenAIEmbedder(unittest.TestCase):
    def _client(self, vectors: list[list[float]]) -> MagicMock:
        client = MagicMock()
        data = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
        client.embeddings.create.return_value = SimpleNamespace(data=list(reversed(data)))
        return client

    def test_orders_by_index(self) -> None:
        embedder = OpenAIEmbedder(model="emb-test", client=self._client([[1.0], [2.0]]))
        self.assertEqual(embedder.embed(["a", "b"]), [[1.0], [2.0]])

    def test_empty_input(self) -> None:
        self.assertEqual(OpenAIEmbedder(client=MagicMock()).embed([]), [])

    def test_api_error(self) -> None:
        client = MagicMock()
        client.embeddings.create.side_effect = openai.OpenAIError("down")
        with self.assertRaises(EmbeddingUnavailableError):
            OpenAIEmbedder(client=client).embed(["a"])

    def test_count_mismatch(self) -> None:
        with self.assertRaises(EmbeddingUnavailableError):
            OpenAIEmbedder(client=self._client([[1.0]])).embed(["a", "b"])

    @patch.dict(os.environ, {}, clear=True)
    def test_unavailable_without_key(self) -> None:
        embedder = OpenAIEmbedder()
        self.assertFalse(embedder.is_available())
        with self.assertRaises(EmbeddingUnavailableError):
            embedder.embed(["a"])


if __name__ == "__main__":
    unittest.main()
