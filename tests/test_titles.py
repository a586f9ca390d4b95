"""
Tests for KeywordTitleGenerator.
"""

import pytest

from promptrelay.titles import DEFAULT_TITLE, KeywordTitleGenerator


@pytest.fixture
def gen():
    return KeywordTitleGenerator()


@pytest.mark.parametrize("message,title", [
    ("How do I use Python decorators?", "Python Programming"),
    ("Explain binary search to me", "Algorithm Questions"),
    ("Is postgres a good choice here", "Databases"),
    ("I keep getting a bug in my loop", "Troubleshooting"),
])
def test_topic_patterns(gen, message, title):
    assert gen.generate_title(message) == title


def test_first_pattern_wins(gen):
    # Both "python" and "bug" match; the language row comes first
    assert gen.generate_title("python bug in my script") == "Python Programming"


@pytest.mark.parametrize("message", ["", "   ", None, "Hello!", "hi"])
def test_default_title(gen, message):
    assert gen.generate_title(message) == DEFAULT_TITLE


def test_question_title(gen):
    assert gen.generate_title("Why is the sky blue?") == "? Why Is The Sky Blue?"


def test_long_question_is_truncated(gen):
    title = gen.generate_title("Why do cats knock things off tables every single morning?")
    assert title.startswith("? Why Do Cats")
    assert title.endswith("...")
    assert len(title) == 2 + 40


def test_fallback_strips_greeting(gen):
    assert gen.generate_title("Hey, quick thought about gardening") == "Quick Thought About Gardening"


def test_fallback_truncates(gen):
    title = gen.generate_title("Good morning, planning a quiet weekend trip to the mountains")
    assert title.endswith("...")
    assert len(title) == 30


def test_custom_patterns():
    gen = KeywordTitleGenerator([(r"\b(sourdough)\b", "Baking: {0}")])
    assert gen.generate_title("my sourdough is flat") == "Baking: Sourdough"
