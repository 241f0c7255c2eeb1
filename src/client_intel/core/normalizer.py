"""Identity normalisation used as the join key for all fuzzy matching.

``normalize`` is deliberately aggressive and deliberately dumb: it folds case
and drops everything that is not an ASCII letter or digit. There is no
edit-distance or phonetic matching, so legal-suffix variants such as
"Pvt Ltd" and "Private Limited" produce different keys and will not join.
"""

import re
from datetime import datetime

from client_intel.errors import MalformedRecordError

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_YEAR_MONTH = re.compile(r"^(\d{4})-(\d{1,2})(?:-\d{1,2})?$")
_MONTH_YEAR_FORMATS = ("%b %Y", "%B %Y", "%b-%Y", "%B-%Y")


def normalize(name: str | None) -> str:
    """Canonicalise a display name or identifier into a matching key.

    Args:
        name: Any display name or identifier. None is treated as empty.

    Returns:
        Lowercase string of ASCII letters and digits only (possibly empty).
    """
    if not name:
        return ""
    return _NON_ALNUM.sub("", name.lower()).strip()


def normalize_period(raw: str) -> str:
    """Normalise a billing period label to ``YYYY-MM``.

    Accepts ``2025-09``, ``2025-09-01``, ``Sep 2025`` and ``September 2025``.

    Raises:
        MalformedRecordError: If the label matches none of the accepted shapes.
    """
    text = (raw or "").strip()
    match = _YEAR_MONTH.match(text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        if 1 <= month <= 12:
            return f"{year:04d}-{month:02d}"
        raise MalformedRecordError(f"invalid month in period {raw!r}")

    for fmt in _MONTH_YEAR_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return f"{parsed.year:04d}-{parsed.month:02d}"

    raise MalformedRecordError(f"unrecognised period {raw!r}")
