"""Tests for the pyusb control transfer channel."""

import errno
from unittest.mock import Mock

import pytest
from usb.core import USBError, USBTimeoutError
from usb.util import CTRL_RECIPIENT_DEVICE, CTRL_TYPE_VENDOR

from cp210xcfg.transport import (
    ControlTransferChannel,
    PyUsbControlTransferChannel,
    TransferResult,
    TransferStatus,
)


def make_device() -> Mock:
    dev = Mock()
    dev.idVendor = 0x10C4
    dev.idProduct = 0xEA60
    return dev


def test_is_abstract():
    with pytest.raises(TypeError):
        ControlTransferChannel()


class TestOpenClose:
    @pytest.mark.asyncio
    async def test_open_configured_device(self):
        dev = make_device()
        channel = PyUsbControlTransferChannel(dev)

        assert not channel.opened
        await channel.open()

        assert channel.opened
        dev.get_active_configuration.assert_called_once()
        dev.set_configuration.assert_not_called()

    @pytest.mark.asyncio
    async def test_open_unconfigured_device(self):
        dev = make_device()
        dev.get_active_configuration.side_effect = USBError("Configuration not set")
        channel = PyUsbControlTransferChannel(dev)

        await channel.open()

        assert channel.opened
        dev.set_configuration.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_open_error(self):
        dev = make_device()
        dev.get_active_configuration.side_effect = USBError("Configuration not set")
        dev.set_configuration.side_effect = USBError(
            "Access denied", errno=errno.EACCES
        )
        channel = PyUsbControlTransferChannel(dev)

        with pytest.raises(USBError):
            await channel.open()

        assert not channel.opened

    @pytest.mark.asyncio
    async def test_close(self, monkeypatch):
        dispose = Mock()
        monkeypatch.setattr("cp210xcfg.transport.dispose_resources", dispose)

        dev = make_device()
        channel = PyUsbControlTransferChannel(dev)
        await channel.open()
        await channel.close()

        assert not channel.opened
        dispose.assert_called_once_with(dev)


class TestReset:
    @pytest.mark.asyncio
    async def test_reset(self):
        dev = make_device()
        await PyUsbControlTransferChannel(dev).reset()
        dev.reset.assert_called_once_with()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [errno.ENODEV, errno.ENOENT])
    async def test_reset_disconnect(self, code: int):
        dev = make_device()
        dev.reset.side_effect = USBError("No such device", errno=code)

        await PyUsbControlTransferChannel(dev).reset()

    @pytest.mark.asyncio
    async def test_reset_error(self):
        dev = make_device()
        dev.reset.side_effect = USBError("Input/Output Error", errno=errno.EIO)

        with pytest.raises(USBError):
            await PyUsbControlTransferChannel(dev).reset()


class TestControlTransferOut:
    @pytest.mark.asyncio
    async def test_request_type(self):
        dev = make_device()
        dev.ctrl_transfer.return_value = 2
        channel = PyUsbControlTransferChannel(dev, timeout=500)

        result = await channel.control_transfer_out(
            CTRL_TYPE_VENDOR, CTRL_RECIPIENT_DEVICE, 0xFF, 0x3711, 0, b"\x12\x34"
        )

        assert result == TransferResult(TransferStatus.OK, 2)
        dev.ctrl_transfer.assert_called_once_with(
            0x40, 0xFF, 0x3711, 0, b"\x12\x34", 500
        )

    @pytest.mark.asyncio
    async def test_no_data(self):
        dev = make_device()
        dev.ctrl_transfer.return_value = 0
        channel = PyUsbControlTransferChannel(dev)

        result = await channel.control_transfer_out(
            CTRL_TYPE_VENDOR, CTRL_RECIPIENT_DEVICE, 0xFF, 0x3701, 0x1234
        )

        assert result == TransferResult(TransferStatus.OK, 0)
        dev.ctrl_transfer.assert_called_once_with(
            0x40, 0xFF, 0x3701, 0x1234, None, None
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error,status",
        [
            (USBError("Pipe error", errno=errno.EPIPE), TransferStatus.STALL),
            (USBError("Overflow", errno=errno.EOVERFLOW), TransferStatus.BABBLE),
            (USBError("Input/Output Error", errno=errno.EIO), TransferStatus.OTHER),
            (USBTimeoutError("Operation timed out"), TransferStatus.OTHER),
        ],
    )
    async def test_error_status(self, error: USBError, status: TransferStatus):
        dev = make_device()
        dev.ctrl_transfer.side_effect = error
        channel = PyUsbControlTransferChannel(dev)

        result = await channel.control_transfer_out(
            CTRL_TYPE_VENDOR, CTRL_RECIPIENT_DEVICE, 0xFF, 0x370D, 0, b"\x00"
        )

        assert result == TransferResult(status, 0)
