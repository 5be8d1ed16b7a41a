import pytest

from common.config import TagConfig
from common.errors import ConfigError
from rendering.schema import SchemaRegistry, default_registry, non_negative_int


def test_unknown_tag_is_rejected():
    res = default_registry().validate("Script", {"src": "x"})
    assert not res.ok
    assert res.reason == "unknown-tag"


def test_tag_names_are_case_sensitive():
    res = default_registry().validate("maps", {"location": "Paris"})
    assert res.reason == "unknown-tag"


def test_unknown_attributes_are_dropped():
    res = default_registry().validate("Maps", {"location": "Paris", "onclick": "steal()"})
    assert res.ok
    assert res.attributes == {"location": "Paris"}


def test_invalid_page_rejects_whole_tag():
    registry = default_registry()
    for page in ("-1", "three", "1.5", ""):
        res = registry.validate("Cite", {"documentKey": "doc1", "page": page})
        assert not res.ok
        assert res.reason == "invalid-attribute:page"


def test_missing_required_attribute():
    res = default_registry().validate("Cite", {"page": "1"})
    assert not res.ok
    assert res.reason == "missing-attribute:documentKey"


def test_register_returns_new_registry():
    base = SchemaRegistry()
    extended = base.register("Maps", ["location"])
    assert "Maps" not in base
    assert "Maps" in extended
    assert extended.names == ("Maps",)


def test_register_rejects_checks_on_disallowed_attributes():
    with pytest.raises(ConfigError):
        SchemaRegistry().register("Cite", ["page"], validators={"documentKey": bool})


def test_from_config_unknown_validator():
    tags = [TagConfig(name="Cite", allowed_attributes=["page"], validators={"page": "roman"})]
    with pytest.raises(ConfigError):
        SchemaRegistry.from_config(tags)


def test_non_negative_int():
    assert non_negative_int("0")
    assert non_negative_int(" 12 ")
    assert not non_negative_int("-3")
    assert not non_negative_int("٣")  # non-ASCII digit
