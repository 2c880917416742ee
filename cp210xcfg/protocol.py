# SPDX-License-Identifier: MIT
# Copyright (c) 2025 The Pybricks Authors

"""
CP210x vendor configuration protocol.

The CP210x firmware exposes its one-time programmable configuration through a
single vendor request. Every item is written with bRequest = 0xFF, the item is
selected by wValue and some items carry their value in wIndex instead of the
data stage.

This module only builds the request parameters. It does not do any I/O.
"""

import struct
from enum import IntEnum
from typing import NamedTuple, Optional

CP210X_CONFIG_REQUEST = 0xFF
"""
bRequest used for all configuration items.
"""

USB_DT_STRING = 0x03
"""
USB string descriptor type.
"""

MAX_DESCRIPTOR_STRING_LENGTH = 126
"""
Maximum number of characters in a string descriptor.

The length byte is ``2 + 2 * n`` and must fit in one byte.
"""

MAX_SERIAL_DESCRIPTOR_SIZE = 128
"""
Maximum value of the length byte of the serial number string descriptor.
"""


class ConfigItem(IntEnum):
    """
    Configuration item selector, passed as wValue.
    """

    VENDOR_ID = 0x3701
    """
    USB vendor ID. The value is passed as wIndex.
    """

    PRODUCT_ID = 0x3702
    """
    USB product ID. The value is passed as wIndex.
    """

    NAME = 0x3703
    """
    Product string descriptor.
    """

    SERIAL = 0x3704
    """
    Serial number string descriptor.
    """

    FLUSH = 0x370D
    """
    Buffer flush behavior on open and close (one byte).
    """

    MODE = 0x3711
    """
    Port mode word (two bytes, big-endian).
    """


class EncodedRequest(NamedTuple):
    """
    Parameters of a single configuration control transfer.
    """

    item: ConfigItem
    index: int
    data: Optional[bytes] = None


class ValidationError(ValueError):
    """
    Raised when a configuration value cannot be encoded.

    This is always raised before anything is sent to the device.
    """


def _check_int(field: str, value: int, maximum: int) -> None:
    # bool is an int subclass but is never a meaningful register value
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(
            f"{field} must be an integer, got {type(value).__name__}"
        )

    if value < 0 or value > maximum:
        raise ValidationError(
            f"{field} must be in range 0 to 0x{maximum:X}, got {value}"
        )


def _check_str(field: str, value: str) -> None:
    if not isinstance(value, str):
        raise ValidationError(
            f"{field} must be a string, got {type(value).__name__}"
        )


def encode_descriptor_string(s: str) -> bytes:
    """
    Encodes a string as a USB string descriptor.

    Only ASCII is supported. Each character is written as one UTF-16LE code
    unit.

    Args:
        s: The string.

    Returns:
        The complete descriptor, ``2 + 2 * len(s)`` bytes long.

    Raises:
        ValidationError: if the string is too long or contains non-ASCII
            characters.
    """
    _check_str("descriptor string", s)

    if len(s) > MAX_DESCRIPTOR_STRING_LENGTH:
        raise ValidationError(
            f"descriptor string is too long ({len(s)} characters, "
            f"max {MAX_DESCRIPTOR_STRING_LENGTH})"
        )

    if not s.isascii():
        raise ValidationError(f"only ASCII descriptor strings are supported: {s!r}")

    size = 2 + 2 * len(s)

    return struct.pack("<BB", size, USB_DT_STRING) + s.encode("utf-16-le")


def encode_vendor_id(vid: int) -> EncodedRequest:
    _check_int("vendor ID", vid, 0xFFFF)
    return EncodedRequest(ConfigItem.VENDOR_ID, vid)


def encode_product_id(pid: int) -> EncodedRequest:
    _check_int("product ID", pid, 0xFFFF)
    return EncodedRequest(ConfigItem.PRODUCT_ID, pid)


def encode_name(name: str) -> EncodedRequest:
    return EncodedRequest(ConfigItem.NAME, 0, encode_descriptor_string(name))


def encode_serial(serial: str) -> EncodedRequest:
    """
    Encodes the serial number string descriptor.

    The serial number has a smaller size limit than other strings, the
    descriptor may be at most 128 bytes (63 characters).
    """
    data = encode_descriptor_string(serial)

    if data[0] > MAX_SERIAL_DESCRIPTOR_SIZE:
        raise ValidationError(
            f"serial string is too long ({len(serial)} characters, "
            f"max {(MAX_SERIAL_DESCRIPTOR_SIZE - 2) // 2})"
        )

    return EncodedRequest(ConfigItem.SERIAL, 0, data)


def encode_flush(flush: int) -> EncodedRequest:
    _check_int("flush value", flush, 0xFF)
    return EncodedRequest(ConfigItem.FLUSH, 0, struct.pack("B", flush))


def encode_mode(mode: int) -> EncodedRequest:
    _check_int("mode value", mode, 0xFFFF)
    return EncodedRequest(ConfigItem.MODE, 0, struct.pack(">H", mode))
