"""Tests for keyword notation and the default keyword registry."""

import pytest

from fermimporter import DEFAULT_REGISTRY, Negation, ParamShape, keyword, keyword_set


def test_scalar_keyword_with_leading_negation_and_output_name():
    definition = keyword("!source=s>source-address")

    assert definition.name == "source"
    assert definition.shape is ParamShape.SCALAR
    assert definition.negation is Negation.PRE
    assert definition.rendered_name == "source-address"
    assert definition.mergeable


def test_trailing_negation():
    definition = keyword("mac-source!=s")

    assert definition.name == "mac-source"
    assert definition.negation is Negation.POST


def test_keyword_without_parameters():
    definition = keyword("!syn")

    assert definition.shape is ParamShape.NONE
    assert definition.arity == 0
    assert not definition.mergeable


def test_literal_is_never_mergeable():
    definition = keyword("comment=l")

    assert definition.shape is ParamShape.LITERAL
    assert definition.negation is Negation.NONE
    assert not definition.mergeable


def test_fixed_arity():
    definition = keyword("pair=2")

    assert definition.shape is ParamShape.FIXED
    assert definition.arity == 2


def test_composite_fields():
    definition = keyword("!tcp-flags=cc")

    assert definition.shape is ParamShape.COMPOSITE
    assert definition.fields == (ParamShape.LIST, ParamShape.LIST)
    assert definition.arity == 2
    assert not definition.mergeable


def test_accumulating_list_is_not_mergeable():
    definition = keyword("match+=c>mod")

    assert definition.accumulate
    assert definition.shape is ParamShape.LIST
    assert definition.rendered_name == "mod"
    assert not definition.mergeable


@pytest.mark.parametrize("notation", ["!both!=s", "bad=x", "name=", "=s", "zero=0"])
def test_invalid_notation(notation):
    with pytest.raises(ValueError):
        keyword(notation)


def test_keyword_set_is_read_only():
    table = keyword_set("!state=c")

    assert table["state"].shape is ParamShape.LIST
    with pytest.raises(TypeError):
        table["other"] = keyword("other")


def test_alias_resolution():
    assert DEFAULT_REGISTRY.resolve("p") == "protocol"
    assert DEFAULT_REGISTRY.resolve("dport") == "destination-port"
    assert DEFAULT_REGISTRY.resolve("source-address") == "source"
    assert DEFAULT_REGISTRY.resolve("ctstate") == "ctstate"


def test_protocol_and_module_extensions():
    assert "destination-port" in DEFAULT_REGISTRY.protocol_keywords("TCP")
    assert "icmpv6-type" in DEFAULT_REGISTRY.protocol_keywords("ipv6-icmp")
    assert "ctstate" in DEFAULT_REGISTRY.module_keywords("conntrack")
    assert len(DEFAULT_REGISTRY.module_keywords("no-such-module")) == 0


def test_targets():
    assert DEFAULT_REGISTRY.is_target("ACCEPT")
    assert not DEFAULT_REGISTRY.is_target("logdrop")
    assert "reject-with" in DEFAULT_REGISTRY.target_keywords("REJECT")
    assert len(DEFAULT_REGISTRY.target_keywords("logdrop")) == 0


def test_module_for_protocol():
    assert DEFAULT_REGISTRY.module_for_protocol("ipv6-icmp") == "icmp6"
    assert DEFAULT_REGISTRY.module_for_protocol("icmpv6") == "icmp6"
    assert DEFAULT_REGISTRY.module_for_protocol("tcp") == "tcp"


@pytest.mark.parametrize("module, name", [
    ("hashlimit", "hashlimit-mode"),
    ("ipv6header", "header"),
    ("rt", "rt-0-addrs"),
])
def test_pattern_lists_are_not_mergeable(module, name):
    assert not DEFAULT_REGISTRY.module_keywords(module)[name].mergeable


@pytest.mark.parametrize("module, name", [
    ("mac", "mac-source"),
    ("length", "length"),
    ("tos", "tos"),
    ("pkttype", "pkt-type"),
    ("helper", "helper"),
])
def test_module_negation_precedes_option(module, name):
    assert DEFAULT_REGISTRY.module_keywords(module)[name].negation is Negation.PRE
