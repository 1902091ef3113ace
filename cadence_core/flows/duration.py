"""
Duration token parsing.

Wait nodes carry tokens such as ``"30m"``, ``"2h"`` or ``"1d"``. Anything
that does not parse resolves to zero delay and logs ``malformed_duration``
so a single bad wait never blocks the rest of a schedule.
"""

import re
from datetime import timedelta
from typing import Optional, Union

import structlog

logger = structlog.get_logger(__name__)

MS_PER_MINUTE = 60 * 1000

UNIT_MS = {
    "m": MS_PER_MINUTE,
    "h": 60 * MS_PER_MINUTE,
    "d": 24 * 60 * MS_PER_MINUTE,
}

_TOKEN_RE = re.compile(r"^\s*([+-]?\d+)\s*([a-zA-Z]+)\s*$")


def resolve_duration_ms(
    token: Union[str, int, None],
    node_id: Optional[str] = None,
) -> int:
    """
    Resolve a duration token to milliseconds.

    Integers are taken as milliseconds already. Negative and zero
    magnitudes resolve to 0.

    Args:
        token: ``<integer><unit>`` with unit in m, h, d
        node_id: Node the token belongs to, for the warning

    Returns:
        Non-negative delay in milliseconds
    """
    if isinstance(token, bool):
        # bool is an int subclass; never a meaningful duration
        logger.warning("malformed_duration", token=token, node_id=node_id)
        return 0

    if isinstance(token, int):
        if token < 0:
            logger.warning("negative_duration", token=token, node_id=node_id)
            return 0
        return token

    if not token:
        logger.warning("malformed_duration", token=token, node_id=node_id)
        return 0

    match = _TOKEN_RE.match(token)
    unit_ms = UNIT_MS.get(match.group(2).lower()) if match else None
    if match is None or unit_ms is None:
        logger.warning("malformed_duration", token=token, node_id=node_id)
        return 0

    magnitude = int(match.group(1))
    if magnitude <= 0:
        if magnitude < 0:
            logger.warning("negative_duration", token=token, node_id=node_id)
        return 0

    return magnitude * unit_ms


def resolve_duration(
    token: Union[str, int, None],
    node_id: Optional[str] = None,
) -> timedelta:
    """
    Resolve a duration token to a timedelta.

    Raises:
        OverflowError: The delay exceeds what a timedelta can hold
    """
    return timedelta(milliseconds=resolve_duration_ms(token, node_id))


__all__ = ["resolve_duration_ms", "resolve_duration", "UNIT_MS"]
