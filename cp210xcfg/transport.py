# SPDX-License-Identifier: MIT
# Copyright (c) 2025 The Pybricks Authors

"""
USB control transfer channels.
"""

import asyncio
import errno
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, NamedTuple, Optional, TypeVar

from usb.core import Device as USBDevice
from usb.core import USBError, USBTimeoutError
from usb.util import CTRL_OUT, build_request_type, dispose_resources

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransferStatus(Enum):
    OK = "ok"
    STALL = "stall"
    BABBLE = "babble"
    OTHER = "other"


class TransferResult(NamedTuple):
    status: TransferStatus
    bytes_written: int


class ControlTransferChannel(ABC):
    """
    A USB device handle that can do control OUT transfers.

    All methods are coroutines. Callers must not have more than one operation
    outstanding on the same channel.
    """

    @property
    @abstractmethod
    def opened(self) -> bool:
        """
        Whether the device is currently open.
        """

    @abstractmethod
    async def open(self) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def reset(self) -> None:
        """
        Resets the device. The device will usually re-enumerate afterwards.
        """

    @abstractmethod
    async def control_transfer_out(
        self,
        request_type: int,
        recipient: int,
        request: int,
        value: int,
        index: int,
        data: Optional[bytes] = None,
    ) -> TransferResult:
        """
        Does a control OUT transfer.

        Args:
            request_type: One of the ``usb.util.CTRL_TYPE_*`` constants.
            recipient: One of the ``usb.util.CTRL_RECIPIENT_*`` constants.
            request: bRequest.
            value: wValue.
            index: wIndex.
            data: Data stage or ``None`` for no data stage.

        Returns:
            The outcome of the transfer. Errors reported by the device are
            returned as a status, not raised.
        """


def _status_from_error(e: USBError) -> TransferStatus:
    if isinstance(e, USBTimeoutError):
        return TransferStatus.OTHER

    if e.errno == errno.EPIPE:
        return TransferStatus.STALL

    if e.errno == errno.EOVERFLOW:
        return TransferStatus.BABBLE

    return TransferStatus.OTHER


class PyUsbControlTransferChannel(ControlTransferChannel):
    """
    Control transfer channel backed by a pyusb device.

    The blocking libusb calls are run in the default executor.
    """

    def __init__(self, device: USBDevice, timeout: Optional[int] = None):
        """
        Args:
            device: The pyusb device.
            timeout: Transfer timeout in milliseconds or ``None`` to use the
                pyusb default.
        """
        self._device = device
        self._timeout = timeout
        self._opened = False

    @property
    def device(self) -> USBDevice:
        return self._device

    @property
    def opened(self) -> bool:
        return self._opened

    async def _run(self, func: Callable[..., T], *args) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _open(self) -> None:
        try:
            self._device.get_active_configuration()
        except USBError:
            # device is not configured yet
            self._device.set_configuration()

    async def open(self) -> None:
        logger.debug(
            "opening %04x:%04x", self._device.idVendor, self._device.idProduct
        )
        await self._run(self._open)
        self._opened = True

    async def close(self) -> None:
        logger.debug(
            "closing %04x:%04x", self._device.idVendor, self._device.idProduct
        )
        await self._run(dispose_resources, self._device)
        self._opened = False

    def _reset(self) -> None:
        try:
            self._device.reset()
        except USBError as e:
            # the device may drop off the bus before libusb sees the reset complete
            if e.errno not in (errno.ENODEV, errno.ENOENT):
                raise

            logger.debug("device disconnected during reset: %s", e)

    async def reset(self) -> None:
        logger.debug(
            "resetting %04x:%04x", self._device.idVendor, self._device.idProduct
        )
        await self._run(self._reset)

    def _ctrl_transfer(
        self, bm_request_type: int, request: int, value: int, index: int, data
    ) -> TransferResult:
        try:
            written = self._device.ctrl_transfer(
                bm_request_type, request, value, index, data, self._timeout
            )
        except USBError as e:
            logger.debug("control transfer failed: %s", e)
            return TransferResult(_status_from_error(e), 0)

        return TransferResult(TransferStatus.OK, written)

    async def control_transfer_out(
        self,
        request_type: int,
        recipient: int,
        request: int,
        value: int,
        index: int,
        data: Optional[bytes] = None,
    ) -> TransferResult:
        bm_request_type = build_request_type(CTRL_OUT, request_type, recipient)

        return await self._run(
            self._ctrl_transfer, bm_request_type, request, value, index, data
        )
