from unittest.mock import Mock

from django.test import SimpleTestCase

from chat.errors import PersistenceError, UpstreamError, ValidationError
from chat.titles import (
    DEFAULT_TITLE,
    TITLE_PROMPT,
    TitleGenerator,
    clean_ai_title,
    fallback_title,
)


def _msg(role, content, id_=None):
    m = {"role": role, "content": content}
    if id_:
        m["id"] = id_
    return m


class FallbackTitleTests(SimpleTestCase):
    def test_empty_sequence_is_new_chat(self):
        self.assertEqual(fallback_title([]), "New Chat")

    def test_only_system_messages_is_new_chat(self):
        msgs = [_msg("system", "You are a duck"), _msg("system", "Be nice")]
        self.assertEqual(fallback_title(msgs), "New Chat")

    def test_blank_messages_are_ignored(self):
        msgs = [_msg("user", "   "), _msg("assistant", "")]
        self.assertEqual(fallback_title(msgs), "New Chat")

    def test_first_four_words_of_first_user_message(self):
        msgs = [_msg("user", "What is the capital of France?")]
        self.assertEqual(fallback_title(msgs), "What is the capital")

    def test_casing_is_kept_from_source(self):
        msgs = [_msg("user", "how do PYTHON decorators work")]
        self.assertEqual(fallback_title(msgs), "how do PYTHON decorators")

    def test_prefers_user_over_earlier_assistant(self):
        msgs = [_msg("assistant", "Hi there friend"), _msg("user", "Plan my trip")]
        self.assertEqual(fallback_title(msgs), "Plan my trip")

    def test_falls_back_to_first_non_system_message(self):
        msgs = [_msg("system", "rules"), _msg("assistant", "Let us talk about ducks today")]
        self.assertEqual(fallback_title(msgs), "Let us talk about")

    def test_long_title_truncated_to_30_with_ellipsis(self):
        msgs = [_msg("user", "Supercalifragilistic expialidocious antidisestablishment words")]
        title = fallback_title(msgs)
        self.assertEqual(len(title), 30)
        self.assertTrue(title.endswith("..."))
        self.assertEqual(title, "Supercalifragilistic expial...")

    def test_exactly_30_chars_not_truncated(self):
        content = "abcdefghij abcdefghij abcdefgh"
        self.assertEqual(len(content), 30)
        self.assertEqual(fallback_title([_msg("user", content)]), content)

    def test_welcome_message_excluded_regardless_of_role(self):
        msgs = [
            _msg("user", "Hello from the welcome", id_="welcome-message"),
            _msg("assistant", "Quack quack", id_="welcome-message"),
        ]
        self.assertEqual(fallback_title(msgs), "New Chat")

        msgs.append(_msg("user", "Real question here please"))
        self.assertEqual(fallback_title(msgs), "Real question here please")

    def test_irregular_whitespace_collapses(self):
        msgs = [_msg("user", "  one\ttwo   three\nfour five ")]
        self.assertEqual(fallback_title(msgs), "one two three four")

    def test_non_dict_entries_are_skipped(self):
        self.assertEqual(fallback_title([None, "x", _msg("user", "ok then")]), "ok then")


class CleanAiTitleTests(SimpleTestCase):
    def test_strips_quotes_and_punctuation(self):
        self.assertEqual(clean_ai_title('"Python: Data-Analysis!"'), "Python Data-Analysis")

    def test_truncates_to_40(self):
        out = clean_ai_title("A" * 50)
        self.assertEqual(len(out), 40)
        self.assertTrue(out.endswith("..."))


class TitleGeneratorTests(SimpleTestCase):
    def setUp(self):
        self.llm = Mock()
        self.store = Mock()
        self.messages = [_msg("user", "What is the capital of France?")]

    def _gen(self, llm="default", store="default"):
        return TitleGenerator(
            llm=self.llm if llm == "default" else llm,
            store=self.store if store == "default" else store,
            model="title-model",
        )

    def test_requires_messages(self):
        with self.assertRaises(ValidationError):
            self._gen().generate([], "s1")
        with self.assertRaises(ValidationError):
            self._gen().generate(None, "s1")

    def test_requires_session_id(self):
        with self.assertRaises(ValidationError):
            self._gen().generate(self.messages, "")

    def test_no_upstream_anonymous_returns_fallback_not_updated(self):
        out = self._gen(llm=None).generate(self.messages, "s1")
        self.assertEqual(out, {
            "title": "What is the capital",
            "method": "fallback",
            "sessionId": "s1",
            "updated": False,
        })
        self.store.get_session_title.assert_not_called()

    def test_ai_title_is_cleaned_and_persisted(self):
        self.llm.chat.return_value = '  "Capital of France"  '
        self.store.get_session_title.return_value = "New Chat"

        out = self._gen().generate(self.messages, "s1", user_id="u1")

        self.assertEqual(out["title"], "Capital of France")
        self.assertEqual(out["method"], "ai-generated")
        self.assertTrue(out["updated"])
        self.store.update_session_title.assert_called_once_with("s1", "u1", "Capital of France")

    def test_ai_request_shape(self):
        self.llm.chat.return_value = "French Geography"
        msgs = [_msg("system", "be brief"), _msg("user", "hi there")]
        self._gen(store=None).generate(msgs, "s1")

        args, kwargs = self.llm.chat.call_args
        request, model = args
        self.assertEqual(model, "title-model")
        self.assertEqual(request[0], {"role": "system", "content": TITLE_PROMPT})
        self.assertEqual(request[1]["role"], "assistant")
        self.assertEqual(request[2], {"role": "user", "content": "hi there"})
        self.assertEqual(kwargs, {"temperature": 0.3, "max_tokens": 40})

    def test_short_ai_title_keeps_fallback(self):
        self.llm.chat.return_value = '"!!"'
        out = self._gen(store=None).generate(self.messages, "s1")
        self.assertEqual(out["method"], "fallback")
        self.assertEqual(out["title"], "What is the capital")

    def test_upstream_failure_is_recovered(self):
        self.llm.chat.side_effect = UpstreamError("boom", status=503)
        self.store.get_session_title.return_value = "New Chat"
        out = self._gen().generate(self.messages, "s1", user_id="u1")
        self.assertEqual(out["method"], "fallback")
        self.assertTrue(out["updated"])

    def test_lookup_failure_skips_persistence(self):
        self.llm.chat.return_value = "Capital of France"
        self.store.get_session_title.side_effect = PersistenceError("not found")
        out = self._gen().generate(self.messages, "s1", user_id="u1")
        self.assertEqual(out["title"], "Capital of France")
        self.assertFalse(out["updated"])
        self.store.update_session_title.assert_not_called()

    def test_preserves_existing_title_on_failure(self):
        self.llm.chat.side_effect = UpstreamError("down")
        self.store.get_session_title.return_value = "Trip To Paris"
        out = self._gen().generate(self.messages, "s1", user_id="u1", preserve_existing_on_failure=True)
        self.assertEqual(out["title"], "Trip To Paris")
        self.assertEqual(out["method"], "preserved")
        self.store.update_session_title.assert_not_called()

    def test_preserve_is_idempotent(self):
        self.llm.chat.side_effect = UpstreamError("down")
        persisted = {"title": "Trip To Paris"}
        self.store.get_session_title.side_effect = lambda sid, uid: persisted["title"]
        self.store.update_session_title.side_effect = lambda sid, uid, t: persisted.update(title=t)

        gen = self._gen()
        first = gen.generate(self.messages, "s1", user_id="u1", preserve_existing_on_failure=True)
        second = gen.generate(self.messages, "s1", user_id="u1", preserve_existing_on_failure=True)

        self.assertEqual(first["method"], "preserved")
        self.assertEqual(second["method"], "preserved")
        self.assertEqual(persisted["title"], "Trip To Paris")

    def test_fallback_overwrites_when_preserve_not_requested(self):
        self.llm.chat.side_effect = UpstreamError("down")
        self.store.get_session_title.return_value = "Trip To Paris"
        out = self._gen().generate(self.messages, "s1", user_id="u1")
        self.assertEqual(out["method"], "fallback")
        self.store.update_session_title.assert_called_once_with("s1", "u1", "What is the capital")

    def test_default_title_never_replaces_a_real_one(self):
        self.store.get_session_title.return_value = "Trip To Paris"
        msgs = [_msg("system", "only system")]
        out = self._gen(llm=None).generate(msgs, "s1", user_id="u1")
        self.assertEqual(out["title"], "Trip To Paris")
        self.assertEqual(out["method"], "preserved")
        self.store.update_session_title.assert_not_called()

    def test_existing_default_title_is_not_preserved(self):
        self.llm.chat.side_effect = UpstreamError("down")
        self.store.get_session_title.return_value = DEFAULT_TITLE
        out = self._gen().generate(self.messages, "s1", user_id="u1", preserve_existing_on_failure=True)
        self.assertEqual(out["method"], "fallback")
        self.store.update_session_title.assert_called_once()

    def test_write_failure_reports_not_updated(self):
        self.llm.chat.return_value = "Capital of France"
        self.store.get_session_title.return_value = "New Chat"
        self.store.update_session_title.side_effect = PersistenceError("db down")
        out = self._gen().generate(self.messages, "s1", user_id="u1")
        self.assertEqual(out["method"], "ai-generated")
        self.assertFalse(out["updated"])
