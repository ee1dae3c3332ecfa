import pytest

from modtools.confparse import Config, SoftDep, parse_softdep


def parsed(text):
    config = Config()
    config.parse_text(text, "test.conf")
    return config


def test_parse_softdep_pre_and_post():
    dep = parse_softdep("m", "pre: a b post: c")
    assert dep == SoftDep("m", ("a", "b"), ("c",))


def test_parse_softdep_ignores_tokens_before_mode():
    dep = parse_softdep("m", "x y pre: a")
    assert dep.pre == ("a",)
    assert dep.post == ()


def test_parse_softdep_multiple_spaces():
    dep = parse_softdep("m", "post:  a   b ")
    assert dep.post == ("a", "b")
    assert dep.pre == ()


def test_softdep_str_joins_parts():
    assert str(SoftDep("m", ("a", "b"), ("c",))) == "pre: a bpost: c"


def test_softdep_str_empty():
    assert str(SoftDep("m")) == ""


def test_alias_converts_dashes():
    config = parsed("alias my-alias snd-foo\n")
    assert config.aliases == [("my_alias", "snd_foo")]


def test_alias_keeps_dashes_in_brackets():
    config = parsed("alias pci:v[a-b]* snd\n")
    assert config.aliases == [("pci:v[a-b]*", "snd")]


def test_alias_missing_modname_is_ignored():
    config = parsed("alias onlyone\n")
    assert config.aliases == []


def test_blacklist_and_bad_bracket():
    config = parsed("blacklist good\nblacklist bad[\nblacklist worse]\n")
    assert config.blacklists == ["good"]


def test_options_replace_tabs():
    config = parsed("options foo a=1\tb=2\n")
    assert config.options == [("foo", "a=1 b=2")]


def test_options_without_value_ignored():
    config = parsed("options foo\n")
    assert config.options == []


def test_install_and_remove_commands():
    config = parsed("install foo /bin/true --x\nremove bar /bin/false\n")
    assert config.install_commands == [("foo", "/bin/true --x")]
    assert config.remove_commands == [("bar", "/bin/false")]


def test_softdep_line():
    config = parsed("softdep m pre: a post: b\n")
    assert config.softdeps == [SoftDep("m", ("a",), ("b",))]


def test_comments_blank_and_unknown_lines_ignored():
    config = parsed("# comment\n\n   \nbogus foo\ninclude /etc/x\n")
    assert config == Config()


def test_line_continuation():
    config = parsed("alias a \\\n b\n")
    assert config.aliases == [("a", "b")]


def test_last_line_without_newline():
    config = parsed("blacklist one\nblacklist two")
    assert config.blacklists == ["one", "two"]


def test_apply_kcmdline():
    config = Config()
    config.apply_kcmdline("quiet modprobe.blacklist=a,b foo.bar=1\n")
    assert config.blacklists == ["a", "b"]
    assert config.options == [("foo", "bar=1")]


def test_apply_kcmdline_bad_modname():
    config = Config()
    config.apply_kcmdline("foo[.x=1")
    assert config.options == []


def test_parse_file(tmp_path):
    path = tmp_path / "a.conf"
    path.write_text("blacklist foo\n")
    config = Config()
    config.parse_file(path)
    assert config.blacklists == ["foo"]


def test_parse_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config().parse_file(tmp_path / "missing.conf")