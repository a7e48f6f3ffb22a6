# SPDX-License-Identifier: MIT
"""API route modules."""

from . import crates, download, publish

__all__ = ["crates", "download", "publish"]
