import types

import pytest

from enricher.models import DescriptionContext
from enricher.vendors import descriptions


class DummyCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = types.SimpleNamespace(content=self.content)
        return types.SimpleNamespace(choices=[types.SimpleNamespace(message=message)])


def make_client(completions):
    return types.SimpleNamespace(chat=types.SimpleNamespace(completions=completions))


def test_rolling_hash_and_variant_index():
    assert descriptions.rolling_hash("a") == 97
    assert descriptions.rolling_hash("ab") == 3105
    assert descriptions.prompt_variant_index("ab", 4) == 1
    with pytest.raises(ValueError):
        descriptions.prompt_variant_index("ab", 0)


def test_build_prompt_is_stable_and_fills_defaults():
    context = DescriptionContext(name="Cafe X", slug="cafe-x")
    first = descriptions.build_prompt(context, "London")
    assert first == descriptions.build_prompt(context, "London")
    assert "Cafe X" in first
    assert "Restaurant" in first


def test_disabled_generator_returns_empty_string():
    generator = descriptions.DescriptionGenerator("")
    assert generator.enabled is False
    assert generator.generate(DescriptionContext(name="Cafe X")) == ""


def test_generate_returns_trimmed_content():
    completions = DummyCompletions(content="  Lovely spot.  ")
    generator = descriptions.DescriptionGenerator(model="test-model", client=make_client(completions))

    assert generator.generate(DescriptionContext(name="Cafe X", cuisine="cafe")) == "Lovely spot."
    assert completions.calls[0]["model"] == "test-model"
    assert completions.calls[0]["messages"][0]["role"] == "user"


def test_generate_swallows_provider_errors(caplog):
    completions = DummyCompletions(error=RuntimeError("quota"))
    generator = descriptions.DescriptionGenerator(client=make_client(completions))

    with caplog.at_level("WARNING"):
        assert generator.generate(DescriptionContext(name="Cafe X")) == ""
    assert any("quota" in message for message in caplog.messages)
