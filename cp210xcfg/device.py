# SPDX-License-Identifier: MIT
# Copyright (c) 2025 The Pybricks Authors

"""
CP210x device configuration.
"""

import contextlib
import logging
from typing import AsyncIterator, NamedTuple, Optional

from usb.util import CTRL_RECIPIENT_DEVICE, CTRL_TYPE_VENDOR

from .protocol import (
    CP210X_CONFIG_REQUEST,
    ConfigItem,
    EncodedRequest,
    encode_flush,
    encode_mode,
    encode_name,
    encode_product_id,
    encode_serial,
    encode_vendor_id,
)
from .transport import ControlTransferChannel, TransferResult, TransferStatus

logger = logging.getLogger(__name__)


class CP210xOptions(NamedTuple):
    """
    Configuration to write to a device.

    Fields that are ``None`` are left unchanged on the device.
    """

    vid: Optional[int] = None
    pid: Optional[int] = None
    name: Optional[str] = None
    serial: Optional[str] = None
    flush: Optional[int] = None
    mode: Optional[int] = None


def validate_options(options: CP210xOptions) -> None:
    """
    Checks that all options can be encoded without writing anything.

    Raises:
        ValidationError: if any value is invalid.
    """
    if options.vid is not None:
        encode_vendor_id(options.vid)

    if options.pid is not None:
        encode_product_id(options.pid)

    if options.name is not None:
        encode_name(options.name)

    if options.serial is not None:
        encode_serial(options.serial)

    if options.flush is not None:
        encode_flush(options.flush)

    if options.mode is not None:
        encode_mode(options.mode)


class TransferError(RuntimeError):
    """
    Raised when the device does not accept a configuration item.
    """

    def __init__(self, item: ConfigItem, status: TransferStatus, bytes_written: int):
        super().__init__(
            f"Failed to write config item {item.name} "
            f"(status: {status.value}, bytes written: {bytes_written})"
        )
        self.item = item
        self.status = status
        self.bytes_written = bytes_written


class DeviceStateError(RuntimeError):
    """
    Raised when the device is not in the expected open/closed state.
    """


class CP210xDevice:
    """
    Writes configuration to a CP210x USB to UART bridge.
    """

    def __init__(self, channel: ControlTransferChannel):
        self._channel = channel

    @property
    def channel(self) -> ControlTransferChannel:
        return self._channel

    @contextlib.asynccontextmanager
    async def _session(self) -> AsyncIterator[None]:
        if self._channel.opened:
            yield
            return

        await self._channel.open()

        try:
            yield
        except BaseException:
            # don't let a failed close hide the original error
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("failed to close device after error: %s", e)
            raise

        await self._channel.close()

    async def configure(self, options: CP210xOptions) -> None:
        """
        Writes all given options to the device and then resets it.

        Options are written in the order vid, pid, name, serial, flush, mode.
        The device is opened if needed and, in that case, closed again when
        done, even on error.

        Raises:
            ValidationError: if a value is invalid. Items before it have
                already been written.
            TransferError: if the device rejected an item. Items after it are
                not written and the device is not reset.
        """
        logger.info("configuring device: %r", options)

        async with self._session():
            if options.vid is not None:
                await self.set_vid(options.vid)

            if options.pid is not None:
                await self.set_pid(options.pid)

            if options.name is not None:
                await self.set_name(options.name)

            if options.serial is not None:
                await self.set_serial(options.serial)

            if options.flush is not None:
                await self.set_flush(options.flush)

            if options.mode is not None:
                await self.set_mode(options.mode)

            await self.reset()

        logger.info("configuration done")

    async def reset(self) -> None:
        """
        Resets the device so that the new configuration takes effect.
        """
        self._check_opened()
        await self._channel.reset()

    async def set_vid(self, vid: int) -> TransferResult:
        return await self._write(encode_vendor_id(vid))

    async def set_pid(self, pid: int) -> TransferResult:
        return await self._write(encode_product_id(pid))

    async def set_name(self, name: str) -> TransferResult:
        return await self._write(encode_name(name))

    async def set_serial(self, serial: str) -> TransferResult:
        return await self._write(encode_serial(serial))

    async def set_flush(self, flush: int) -> TransferResult:
        return await self._write(encode_flush(flush))

    async def set_mode(self, mode: int) -> TransferResult:
        return await self._write(encode_mode(mode))

    def _check_opened(self) -> None:
        if not self._channel.opened:
            raise DeviceStateError("device is not open")

    async def _write(self, request: EncodedRequest) -> TransferResult:
        self._check_opened()

        logger.debug(
            "writing %s: index=0x%04X data=%s",
            request.item.name,
            request.index,
            request.data.hex() if request.data is not None else None,
        )

        result = await self._channel.control_transfer_out(
            CTRL_TYPE_VENDOR,
            CTRL_RECIPIENT_DEVICE,
            CP210X_CONFIG_REQUEST,
            request.item,
            request.index,
            request.data,
        )

        if result.status != TransferStatus.OK:
            raise TransferError(request.item, result.status, result.bytes_written)

        return result
