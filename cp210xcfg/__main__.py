# SPDX-License-Identifier: MIT
# Copyright (c) 2025 The Pybricks Authors

"""Main entry point for running cp210xcfg as a module."""

from cp210xcfg.cli import main

if __name__ == "__main__":
    main()
