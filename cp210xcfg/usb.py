# SPDX-License-Identifier: MIT
# Copyright (c) 2025 The Pybricks Authors

"""
CP210x USB device discovery.
"""

import logging
from typing import Optional

from usb.core import Device as USBDevice
from usb.core import USBError
from usb.core import find as find_usb

logger = logging.getLogger(__name__)

SILABS_USB_VID = 0x10C4

CP2102_USB_PID = 0xEA60
"""
CP2102/CP2102N/CP2104 (and other single port bridges) factory default PID.
"""

CP2105_USB_PID = 0xEA70
"""
CP2105 dual port bridge factory default PID.
"""

CP210X_USB_PIDS = (CP2102_USB_PID, CP2105_USB_PID)


class DeviceNotFoundError(RuntimeError):
    pass


class MultipleDevicesError(RuntimeError):
    pass


def _get_serial(dev: USBDevice) -> Optional[str]:
    try:
        return dev.serial_number
    except (USBError, ValueError) as e:
        # reading strings requires permission to open the device
        logger.debug("could not read serial number of %s: %s", dev, e)
        return None


def is_cp210x(
    dev: USBDevice, vid: Optional[int] = None, pid: Optional[int] = None
) -> bool:
    """
    Tests if a device is a CP210x bridge.

    Args:
        dev: The device.
        vid: Vendor ID to match instead of the Silicon Labs ID.
        pid: Product ID to match instead of the factory default IDs.
    """
    if vid is None and pid is None:
        return dev.idVendor == SILABS_USB_VID and dev.idProduct in CP210X_USB_PIDS

    if vid is not None and dev.idVendor != vid:
        return False

    if pid is not None and dev.idProduct != pid:
        return False

    return True


def find_device(
    vid: Optional[int] = None,
    pid: Optional[int] = None,
    serial: Optional[str] = None,
) -> USBDevice:
    """
    Finds exactly one connected CP210x device.

    Arguments:
        vid:
            Vendor ID to search for. Needed for devices that have already been
            programmed with a custom ID. Defaults to the Silicon Labs ID when
            only ``pid`` is given.
        pid:
            Product ID to search for. If ``None``, any of the factory default
            product IDs will match unless ``vid`` is given.
        serial:
            Serial number string to match. If ``None``, it is not used as part
            of the matching criteria.

    Returns:
        The matching device.

    Raises:
        DeviceNotFoundError:
            No matching device is connected.
        MultipleDevicesError:
            More than one device matched.
    """
    if vid is None and pid is not None:
        vid = SILABS_USB_VID

    def match(dev: USBDevice) -> bool:
        if not is_cp210x(dev, vid, pid):
            return False

        if serial is not None and _get_serial(dev) != serial:
            return False

        return True

    devices = list(find_usb(find_all=True, custom_match=match))

    if not devices:
        raise DeviceNotFoundError("No CP210x device found.")

    if len(devices) > 1:
        raise MultipleDevicesError(
            f"Found {len(devices)} CP210x devices. "
            "Disconnect the others or select one by serial number."
        )

    dev = devices[0]
    logger.info("found device %04x:%04x", dev.idVendor, dev.idProduct)

    return dev
