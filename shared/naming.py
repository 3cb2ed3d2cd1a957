"""Placeholder substitution for histogram names, titles and file names.

Templates may contain any of the tokens below; each is replaced by the
matching value for the event, channel range and status partition being
described::

    %RUN% %SUBRUN% %EVENT% %CHAN1% %CHAN2% %CRNAME% %CRLABEL% %STATUS%
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from .models import ChannelRange, ChannelStatus

PLACEHOLDERS = (
    "%RUN%",
    "%SUBRUN%",
    "%EVENT%",
    "%CHAN1%",
    "%CHAN2%",
    "%CRNAME%",
    "%CRLABEL%",
    "%STATUS%",
)

STATUS_PLACEHOLDER = "%STATUS%"
ALL_STATUS = "all"


def has_status_placeholder(template: str) -> bool:
    return STATUS_PLACEHOLDER in template


def substitutions(
    *,
    run: int,
    subrun: int,
    event: int,
    channel_range: ChannelRange,
    status: Optional[ChannelStatus] = None,
) -> Dict[str, str]:
    """Build the token -> text map for one output."""
    return {
        "%RUN%": str(run),
        "%SUBRUN%": str(subrun),
        "%EVENT%": str(event),
        "%CHAN1%": str(channel_range.first),
        "%CHAN2%": str(channel_range.last),
        "%CRNAME%": channel_range.name,
        "%CRLABEL%": channel_range.label,
        "%STATUS%": ALL_STATUS if status is None else status.value,
    }


def render(template: str, values: Mapping[str, str]) -> str:
    """Replace every known placeholder in ``template``; unknown text is kept."""
    out = template
    for token in PLACEHOLDERS:
        if token in out and token in values:
            out = out.replace(token, values[token])
    return out


__all__ = ["PLACEHOLDERS", "STATUS_PLACEHOLDER", "ALL_STATUS", "has_status_placeholder", "substitutions", "render"]
