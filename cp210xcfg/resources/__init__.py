"""Resource files.

These resources are intended to be used with the standard ``importlib.resources``
module.
"""

UDEV_RULES = "99-cp210xcfg.rules"
"""Linux udev rules file name."""
