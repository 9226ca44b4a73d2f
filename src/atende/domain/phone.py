"""Phone / WhatsApp JID normalization.

The canonical phone key (digits only, JID suffix removed) is the merge key
for conversations and the join key against the contact directory.
"""

import re

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str | None) -> str:
    """Canonical key for a phone or JID.

    >>> normalize_phone("5511999998888@s.whatsapp.net")
    '5511999998888'
    >>> normalize_phone("+55 (11) 99999-8888")
    '5511999998888'
    """
    if not raw:
        return ""
    local = raw.split("@", 1)[0]
    return _NON_DIGITS.sub("", local)


def format_phone(raw: str | None) -> str:
    """Display form for Brazilian mobile numbers: `(11) 99999-8888`.

    Anything that is not 55 + DDD + 9 digits is returned as its canonical key.
    """
    key = normalize_phone(raw)
    if len(key) == 13 and key.startswith("55"):
        return f"({key[2:4]}) {key[4:9]}-{key[9:]}"
    return key
