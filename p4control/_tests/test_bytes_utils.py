import pytest

from p4control.core import bytes_utils
from p4control.core.bytes_utils import (EncodeError, UserBadIPv4Error, UserBadMacError,
                                        UserBadValueError)


@pytest.mark.parametrize('addr', ['10.0.0.10', '0.0.0.0', '255.255.255.255', '192.168.1.1'])
def test_ipv4_round_trip(addr):
    data = bytes_utils.ipv4Addr_to_bytes(addr)
    assert len(data) == 4
    assert bytes_utils.bytes_to_ipv4Addr(data) == addr


def test_ipv4_encoding_is_big_endian():
    assert bytes_utils.ipv4Addr_to_bytes('10.0.0.10') == b'\x0a\x00\x00\x0a'


@pytest.mark.parametrize('addr', ['00:04:00:00:00:00', 'ff:ff:ff:ff:ff:ff', '0a:1b:2c:3d:4e:5f'])
def test_mac_round_trip(addr):
    data = bytes_utils.macAddr_to_bytes(addr)
    assert len(data) == 6
    assert bytes_utils.bytes_to_macAddr(data) == addr


@pytest.mark.parametrize('value,nbytes', [(0, 1), (1, 2), (511, 2), (2 ** 32 - 1, 4)])
def test_int_round_trip(value, nbytes):
    data = bytes_utils.int_to_bytes(value, nbytes)
    assert len(data) == nbytes
    assert bytes_utils.bytes_to_int(data) == value


def test_port_is_encoded_on_two_bytes():
    assert bytes_utils.int_to_bytes(1, 2) == b'\x00\x01'


@pytest.mark.parametrize('addr', ['10.0.0', '10.0.0.256', 'not an ip', 167772170])
def test_bad_ipv4(addr):
    with pytest.raises(UserBadIPv4Error):
        bytes_utils.ipv4Addr_to_bytes(addr)


@pytest.mark.parametrize('addr', ['00:04:00:00:00', '00:04:00:00:00:zz', '100:0:0:0:0:0'])
def test_bad_mac(addr):
    with pytest.raises(UserBadMacError):
        bytes_utils.macAddr_to_bytes(addr)


@pytest.mark.parametrize('value', [-1, 65536, '1', 1.0])
def test_bad_int(value):
    with pytest.raises(UserBadValueError):
        bytes_utils.int_to_bytes(value, 2)


def test_encode_errors_share_a_base():
    for error in (UserBadIPv4Error, UserBadMacError, UserBadValueError):
        assert issubclass(error, EncodeError)


def test_parse_value_dispatches_on_bitwidth():
    assert bytes_utils.parse_value('10.0.0.1', 32) == b'\x0a\x00\x00\x01'
    assert bytes_utils.parse_value('00:00:00:00:00:01', 48) == b'\x00' * 5 + b'\x01'
    assert bytes_utils.parse_value('0x10', 9) == b'\x00\x10'
    with pytest.raises(UserBadValueError):
        bytes_utils.parse_value('nope', 16)
