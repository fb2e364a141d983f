"""Counter store key namespace.

These shapes are shared with deployments of the previous gate and must not
change: `banned-<id>`, `bytes_read-<id>`, `fraction_read-<id>-<path>`,
`last_access-<id>-<path>`.
"""

from __future__ import annotations


def banned(identity: str) -> str:
    return f"banned-{identity}"


def bytes_read(identity: str) -> str:
    return f"bytes_read-{identity}"


def fraction_read(identity: str, resource: str) -> str:
    return f"fraction_read-{identity}-{resource}"


def last_access(identity: str, resource: str) -> str:
    return f"last_access-{identity}-{resource}"
