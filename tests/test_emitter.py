"""Tests for configuration rendering."""

import io
from dataclasses import replace

import pytest

from fermimporter import (
    DEFAULT_REGISTRY,
    Action,
    BlockRule,
    Clause,
    Composite,
    Emitter,
    LeafRule,
    ListValue,
    Negated,
    OptionParser,
    PreNegated,
    Scalar,
    keyword_set,
    render_action,
    render_clause,
    render_leaf,
    render_text,
    render_value,
    tokenize,
)


def parse(text):
    return OptionParser().parse(tokenize(text), 1)


def render(text):
    return render_leaf(parse(text), DEFAULT_REGISTRY)


@pytest.mark.parametrize("text, expected", [
    ("eth0", "eth0"),
    ("10.0.0.0/8", "10.0.0.0/8"),
    ("fe80::1", "fe80::1"),
    ("dropped: ", '"dropped: "'),
    ('say "hi"', '"say \\"hi\\""'),
    ("back\\slash", '"back\\\\slash"'),
    ("", '""'),
])
def test_render_text(text, expected):
    assert render_text(text) == expected


def test_render_single_item_list():
    assert render_value(ListValue((Scalar("NEW"),))) == "NEW"


def test_render_array():
    assert render_value(ListValue((Scalar("22"), Scalar("80")))) == "(22 80)"


def test_render_composite():
    value = Composite((ListValue((Scalar("SYN"), Scalar("ACK"))), ListValue((Scalar("SYN"),))))

    assert render_value(value) == "(SYN ACK) SYN"


def test_render_negations():
    assert render_clause(Clause("protocol", PreNegated(Scalar("tcp")))) == "! protocol tcp"
    assert render_clause(Clause("mac-source", Negated(Scalar("00:11:22:33:44:55")))) == \
        "mac-source ! 00:11:22:33:44:55"
    assert render_clause(Clause("fragment", PreNegated(None))) == "! fragment"


def test_render_uses_output_name():
    assert render("-s 10.0.0.1 -j ACCEPT") == "source-address 10.0.0.1 ACCEPT;"


def test_render_empty_rule():
    assert render_leaf(LeafRule(), DEFAULT_REGISTRY) == "NOP;"


@pytest.mark.parametrize("action, expected", [
    (Action("jump", "ACCEPT"), "ACCEPT"),
    (Action("jump", "logdrop"), "jump logdrop"),
    (Action("goto", "other"), "goto other"),
    (Action("jump", "REJECT", (Clause("reject-with", Scalar("tcp-reset")),)), "REJECT reject-with tcp-reset"),
])
def test_render_action(action, expected):
    assert render_action(action, DEFAULT_REGISTRY) == expected


def test_negation_placement_in_rules():
    assert render("! -p tcp -j DROP") == "! protocol tcp DROP;"
    assert render("-m mac ! --mac-source 00:11:22:33:44:55 -j DROP") == \
        "mod mac ! mac-source 00:11:22:33:44:55 DROP;"


def test_render_log_prefix():
    assert render('-j LOG --log-prefix "IN: "') == 'LOG log-prefix "IN: ";'


def test_emitter_indentation():
    stream = io.StringIO()
    emitter = Emitter(stream, indent=2)

    emitter.line("chain INPUT {")
    emitter.rules([
        BlockRule(Clause("protocol", Scalar("tcp")), (
            LeafRule((Clause("destination-port", Scalar("22")),), Action("jump", "ACCEPT")),
            LeafRule((), Action("jump", "DROP")),
        )),
        LeafRule(),
    ])
    emitter.line("}")

    assert stream.getvalue() == (
        "chain INPUT {\n"
        "  protocol tcp {\n"
        "    destination-port 22 ACCEPT;\n"
        "    DROP;\n"
        "  }\n"
        "  NOP;\n"
        "}\n"
    )


def test_emitter_blank_line():
    stream = io.StringIO()
    emitter = Emitter(stream)

    emitter.line("domain ip {")
    emitter.line("")
    emitter.line("}")

    assert stream.getvalue() == "domain ip {\n\n}\n"


@pytest.mark.parametrize("rule", [
    "-s 10.0.0.1 -j ACCEPT",
    "! -s 10.0.0.0/8 -i eth0 -j DROP",
    "-p tcp --dport 22 -j ACCEPT",
    "-p tcp --tcp-flags SYN,RST,ACK SYN -j DROP",
    "-m conntrack --ctstate RELATED,ESTABLISHED -j ACCEPT",
    "-m state -m comment --state NEW --comment \"new connection\" -j ACCEPT",
    "-m mac ! --mac-source 00:11:22:33:44:55 -j DROP",
    "-m set --match-set blocked src,dst -j DROP",
    "! -f -j DROP",
    "-p udp -m multiport --dports 53,123 -g services",
    "-m length ! --length 0:64 -j ACCEPT",
    "-m hashlimit --hashlimit-mode srcip,dstport --hashlimit-name ssh -j ACCEPT",
    "-p tcp -j REJECT --reject-with tcp-reset",
    '-j LOG --log-prefix "dropped: " --log-level 4',
    "-i eth0 -j logdrop",
    "",
])
def test_render_parses_back(rule):
    original = parse(rule)

    assert parse(render_leaf(original, DEFAULT_REGISTRY)) == original


def test_trailing_negation_parses_back():
    registry = replace(DEFAULT_REGISTRY, match_keywords=keyword_set("value!=s"))
    parser = OptionParser(registry)
    original = parser.parse(tokenize("--value ! 42 -j DROP"), 1)
    text = render_leaf(original, registry)

    assert text == "value ! 42 DROP;"
    assert parser.parse(tokenize(text), 1) == original

