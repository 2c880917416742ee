# SPDX-License-Identifier: MIT
# Copyright (c) 2025 The Pybricks Authors

"""Command line wrapper around cp210xcfg library."""

import argparse
import asyncio
import errno
import logging
import platform
import sys
from abc import ABC, abstractmethod
from os import path

import argcomplete
import questionary

from cp210xcfg import __name__ as MODULE_NAME
from cp210xcfg import __version__ as MODULE_VERSION

PROG_NAME = (
    f"{path.basename(sys.executable)} -m {MODULE_NAME}"
    if sys.argv[0].endswith("__main__.py")
    else path.basename(sys.argv[0])
)


class Tool(ABC):
    """Common base class for tool implementations."""

    @abstractmethod
    def add_parser(self, subparsers: argparse._SubParsersAction):
        """
        Overriding methods must at least do the following::

            parser = subparsers.add_parser('tool', ...)
            parser.tool = self

        Then additional arguments can be added using the ``parser`` object.
        """
        pass

    @abstractmethod
    async def run(self, args: argparse.Namespace):
        """
        Overriding methods should provide an implementation to run the tool.
        """
        pass


def _int(value: str) -> int:
    """Parses decimal, hex (``0x``), octal (``0o``) or binary (``0b``) integers."""
    try:
        return int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}")


def _usb_id(value: str) -> tuple[int, int]:
    """Parses ``VID:PID`` given as hex numbers like ``lsusb`` prints them."""
    try:
        vid, pid = value.split(":")
        return int(vid, 16), int(pid, 16)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid USB ID: {value!r} (expecting VID:PID, e.g. 10c4:ea60)"
        )


class Configure(Tool):
    def add_parser(self, subparsers: argparse._SubParsersAction):
        parser = subparsers.add_parser(
            "configure",
            help="write configuration to a CP210x device and reset it",
        )
        parser.tool = self
        parser.add_argument(
            "--device",
            metavar="<vid:pid>",
            help="USB ID of the device if it is not using a factory default ID",
            type=_usb_id,
        )
        parser.add_argument(
            "--match-serial",
            metavar="<serial>",
            help="select the device with this serial number",
        )
        parser.add_argument(
            "--vid",
            metavar="<n>",
            help="new USB vendor ID",
            type=_int,
        )
        parser.add_argument(
            "--pid",
            metavar="<n>",
            help="new USB product ID",
            type=_int,
        )
        parser.add_argument(
            "--name",
            metavar="<string>",
            help="new product string (ASCII, at most 126 characters)",
        )
        parser.add_argument(
            "--serial",
            metavar="<string>",
            help="new serial number string (ASCII, at most 63 characters)",
        )
        parser.add_argument(
            "--flush",
            metavar="<n>",
            help="new flush buffer configuration byte",
            type=_int,
        )
        parser.add_argument(
            "--mode",
            metavar="<n>",
            help="new port mode word",
            type=_int,
        )
        parser.add_argument(
            "-y",
            "--yes",
            action="store_true",
            help="don't ask for confirmation before writing",
        )

    async def run(self, args: argparse.Namespace):
        from usb.core import NoBackendError, USBError

        from cp210xcfg.device import (
            CP210xDevice,
            CP210xOptions,
            DeviceStateError,
            TransferError,
            validate_options,
        )
        from cp210xcfg.protocol import ValidationError
        from cp210xcfg.transport import PyUsbControlTransferChannel
        from cp210xcfg.usb import (
            DeviceNotFoundError,
            MultipleDevicesError,
            find_device,
        )

        options = CP210xOptions(
            vid=args.vid,
            pid=args.pid,
            name=args.name,
            serial=args.serial,
            flush=args.flush,
            mode=args.mode,
        )

        # catch bad values before touching the device
        try:
            validate_options(options)
        except ValidationError as e:
            print(f"Invalid configuration: {e}", file=sys.stderr)
            exit(1)

        vid, pid = args.device or (None, None)

        try:
            dev = find_device(vid, pid, args.match_serial)

            if not args.yes and not await questionary.confirm(
                f"Write configuration to {dev.idVendor:04x}:{dev.idProduct:04x}? "
                "This cannot be undone."
            ).ask_async():
                return

            await CP210xDevice(PyUsbControlTransferChannel(dev)).configure(options)
        except (
            DeviceNotFoundError,
            MultipleDevicesError,
            TransferError,
            DeviceStateError,
        ) as e:
            print(e, file=sys.stderr)
            exit(1)
        except NoBackendError:
            print(
                "No USB backend found. Please install libusb.",
                file=sys.stderr,
            )
            exit(1)
        except USBError as e:
            if e.errno != errno.EACCES or platform.system() != "Linux":
                # not expecting other errors
                raise

            print(
                "Permission to access USB device denied. Did you install udev rules?",
                file=sys.stderr,
            )
            print(
                "Run `cp210xcfg udev | sudo tee "
                "/etc/udev/rules.d/99-cp210xcfg.rules` then try again.",
                file=sys.stderr,
            )
            exit(1)

        print("Done.")


class Udev(Tool):
    def add_parser(self, subparsers: argparse._SubParsersAction):
        parser = subparsers.add_parser("udev", help="print udev rules to stdout")
        parser.tool = self

    async def run(self, args: argparse.Namespace):
        from importlib.resources import files

        from cp210xcfg import resources

        print(files(resources).joinpath(resources.UDEV_RULES).read_text())


def main():
    """Runs ``cp210xcfg`` command line interface."""

    # Provide main description and help.
    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description="Utilities for configuring CP210x USB to UART bridges.",
        epilog="Run `%(prog)s <tool> --help` for tool-specific arguments.",
    )

    parser.add_argument(
        "-v", "--version", action="version", version=f"{MODULE_NAME} v{MODULE_VERSION}"
    )
    parser.add_argument(
        "-d", "--debug", action="store_true", help="enable debug logging"
    )

    subparsers = parser.add_subparsers(
        metavar="<tool>",
        dest="tool",
        help="the tool to use",
    )

    for tool in Configure(), Udev():
        tool.add_parser(subparsers)

    argcomplete.autocomplete(parser)
    args = parser.parse_args()

    logging.basicConfig(
        format="%(asctime)s: %(levelname)s: %(name)s: %(message)s",
        level=logging.DEBUG if args.debug else logging.WARNING,
    )

    if not args.tool:
        parser.error(f'Missing name of tool: {"|".join(subparsers.choices.keys())}')

    asyncio.run(subparsers.choices[args.tool].tool.run(args))
