from __future__ import annotations

import re
import typing as t

from sqltask.errors import PropertyError

_PLACEHOLDER_RE = re.compile(r"\$\{([A-Za-z_][\w.\-]*)\}")


def expand(
    text: str,
    properties: t.Mapping[str, t.Any] | None,
    *,
    enabled: bool = True,
) -> str:
    """
    Substitute every ``${name}`` in *text* from *properties*.

    An undefined name aborts with :class:`PropertyError`; a script is never
    executed with a placeholder left in it.
    """
    if not enabled or properties is None:
        return text

    def _lookup(m: re.Match[str]) -> str:
        name = m.group(1)
        try:
            return str(properties[name])
        except KeyError:
            raise PropertyError(f"Property {name!r} has not been set") from None

    return _PLACEHOLDER_RE.sub(_lookup, text)
