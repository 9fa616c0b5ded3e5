"""
Probe categories, in the order a full scan runs them.
"""

from typing import Awaitable, Callable

from dast_scanner.probes import (
    access,
    business,
    cache,
    cmdi,
    cors,
    csrf,
    deserialization,
    headers,
    jwt,
    methods,
    nosql,
    redirect,
    sensitive,
    sqli,
    ssrf,
    traversal,
    upload,
    xss,
    xxe,
)
from dast_scanner.probes.base import ProbeContext

ProbeFunc = Callable[[ProbeContext], Awaitable[None]]

PROBES: dict[str, ProbeFunc] = {
    module.NAME: module.run
    for module in (
        xss,
        sqli,
        headers,
        redirect,
        cmdi,
        traversal,
        access,
        sensitive,
        csrf,
        cors,
        nosql,
        ssrf,
        xxe,
        upload,
        methods,
        cache,
        jwt,
        deserialization,
        business,
    )
}

PROBE_NAMES = list(PROBES)

__all__ = ["PROBES", "PROBE_NAMES", "ProbeContext", "ProbeFunc"]
