import pytest

from netlab.byteorder import describe_network_order, main, network_first_byte


def test_first_byte_of_sample_is_high_byte():
    assert network_first_byte(0x1234) == 0x12


@pytest.mark.parametrize("value", [0, 1, 0xFF, 0x100, 0xABCD, 0xFFFF])
def test_first_byte_is_big_endian_high_byte(value):
    assert network_first_byte(value) == value.to_bytes(2, "big")[0]


@pytest.mark.parametrize("value", [-1, 0x10000])
def test_out_of_range_rejected(value):
    with pytest.raises(ValueError):
        network_first_byte(value)


def test_sample_is_big():
    assert describe_network_order(0x1234) == "It's big"


def test_default_matches_sample():
    assert describe_network_order() == describe_network_order(0x1234)


def test_equal_bytes_reported_as_little():
    assert describe_network_order(0x1111) == "It's little"


def test_main_prints_big(capsys):
    assert main([]) == 0
    assert capsys.readouterr().out == "It's big\n"


def test_main_where(capsys):
    assert main(["--where"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "It's big"
    assert lines[1] == "main"
    assert lines[2].endswith("byteorder.py")


def test_main_rejects_bad_value():
    with pytest.raises(SystemExit):
        main(["0x10000"])