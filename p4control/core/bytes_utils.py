# Copyright 2019 Barefoot Networks, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

from ipaddr import IPv4Address, IPv6Address, AddressValueError

from p4control.core.utils import UserError


class EncodeError(UserError):
    pass


class UserBadIPv4Error(EncodeError):
    def __init__(self, addr):
        self.addr = addr

    def __str__(self):
        return "'{}' is not a valid IPv4 address".format(self.addr)


class UserBadIPv6Error(EncodeError):
    def __init__(self, addr):
        self.addr = addr

    def __str__(self):
        return "'{}' is not a valid IPv6 address".format(self.addr)


class UserBadMacError(EncodeError):
    def __init__(self, addr):
        self.addr = addr

    def __str__(self):
        return "'{}' is not a valid MAC address".format(self.addr)


class UserBadValueError(EncodeError):
    pass


def ipv4Addr_to_bytes(addr):
    if not isinstance(addr, str):
        raise UserBadIPv4Error(addr)
    try:
        ip = IPv4Address(addr)
    except (AddressValueError, ValueError):
        raise UserBadIPv4Error(addr)
    return ip.packed


def bytes_to_ipv4Addr(data):
    if len(data) != 4:
        raise UserBadValueError("IPv4 addresses are 4 bytes long, got {}".format(len(data)))
    return str(IPv4Address(int.from_bytes(data, byteorder='big')))


def ipv6Addr_to_bytes(addr):
    if not isinstance(addr, str):
        raise UserBadIPv6Error(addr)
    try:
        ip = IPv6Address(addr)
    except (AddressValueError, ValueError):
        raise UserBadIPv6Error(addr)
    return ip.packed


def macAddr_to_bytes(addr):
    if not isinstance(addr, str):
        raise UserBadMacError(addr)
    try:
        bytes_ = [int(b, 16) for b in addr.split(':')]
    except ValueError:
        raise UserBadMacError(addr)
    if len(bytes_) != 6 or any(b > 0xff or b < 0 for b in bytes_):
        raise UserBadMacError(addr)
    return bytes(bytes_)


def bytes_to_macAddr(data):
    if len(data) != 6:
        raise UserBadValueError("MAC addresses are 6 bytes long, got {}".format(len(data)))
    return ':'.join('{:02x}'.format(b) for b in data)


def int_to_bytes(value, nbytes):
    """Encodes an unsigned integer on ``nbytes`` big-endian bytes."""
    if type(value) is not int or value < 0:
        raise UserBadValueError(
            "Invalid value '{}': not an unsigned integer".format(value))
    try:
        return value.to_bytes(nbytes, byteorder='big')
    except OverflowError:
        raise UserBadValueError(
            "Invalid value '{}': cannot be represented with '{}' bytes".format(
                value, nbytes))


def bytes_to_int(data):
    return int.from_bytes(data, byteorder='big')


def parse_value(value_str, bitwidth, base=0):
    if bitwidth == 32 and '.' in value_str:
        return ipv4Addr_to_bytes(value_str)
    elif bitwidth == 48 and ':' in value_str:
        return macAddr_to_bytes(value_str)
    elif bitwidth == 128 and ':' in value_str:
        return ipv6Addr_to_bytes(value_str)
    try:
        value = int(value_str, base)
    except ValueError:
        raise UserBadValueError(
            "Invalid value '{}': could not cast to integer, try in hex with 0x prefix".format(
                value_str))
    return int_to_bytes(value, (bitwidth + 7) // 8)
