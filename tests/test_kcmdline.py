from modtools.kcmdline import KCMD_LINE_SIZE, CmdlineOption, parse_kcmdline


def test_plain_options_are_skipped():
    assert parse_kcmdline("quiet splash root=/dev/sda1 ro") == []


def test_module_option_with_value():
    options = parse_kcmdline("quiet usbcore.autosuspend=-1 ro")
    assert options == [CmdlineOption("usbcore", "autosuspend=-1", "-1")]


def test_module_option_without_value():
    options = parse_kcmdline("snd.flag")
    assert options == [CmdlineOption("snd", "flag", None)]


def test_several_options_in_order():
    options = parse_kcmdline("a.x=1\tb.y=2\nc.z")
    assert [(o.modname, o.param) for o in options] == [
        ("a", "x=1"), ("b", "y=2"), ("c", "z")]


def test_second_dot_in_param_ignores_option():
    assert parse_kcmdline("a.b.c=1 d.e=2") == [CmdlineOption("d", "e=2", "2")]


def test_quoted_value_keeps_spaces():
    options = parse_kcmdline('mod.opt="a b c" next.p=1')
    assert options[0] == CmdlineOption("mod", 'opt="a b c"', '"a b c"')
    assert options[1].modname == "next"


def test_bootloader_quoted_option_is_requoted():
    text = '"parport.dyndbg=file drivers/parport/ieee1284_ops.c +mpf"'
    (option,) = parse_kcmdline(text)
    assert option.modname == "parport"
    assert option.param == 'dyndbg="file drivers/parport/ieee1284_ops.c +mpf"'


def test_quote_inside_modname_ignores_option():
    assert parse_kcmdline('mo"d.x=1 ok.y=2') == [CmdlineOption("ok", "y=2", "2")]


def test_space_in_quoted_param_ignores_option():
    assert parse_kcmdline('"mod.a b=1"') == []


def test_blacklist_option():
    (option,) = parse_kcmdline("modprobe.blacklist=foo,bar")
    assert option.is_blacklist
    assert option.blacklisted == ["foo", "bar"]


def test_non_blacklist_has_no_blacklisted():
    (option,) = parse_kcmdline("modprobe.other=foo")
    assert not option.is_blacklist
    assert option.blacklisted == []


def test_text_stops_at_nul():
    assert parse_kcmdline("a.b=1\0c.d=2") == [CmdlineOption("a", "b=1", "1")]


def test_line_is_truncated_to_buffer_size():
    filler = "x" * (KCMD_LINE_SIZE - 1 - len("m.p=1 "))
    text = filler + " m.p=1 m.q=2"
    options = parse_kcmdline(text)
    assert [o.modname for o in options] == ["m"]
    assert options[0].param == "p=1"
    assert len(parse_kcmdline(text[:KCMD_LINE_SIZE - 1])) == len(options)