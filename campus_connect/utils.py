from typing import Optional

import bleach


def clean_text(value: Optional[str]) -> Optional[str]:
    """Prepare user-supplied free text (review comments, descriptions) for storage.

    - Strips HTML tags using bleach.clean(..., strip=True)
    - Removes NULL bytes
    - Trims whitespace; blank input becomes None
    """
    if value is None:
        return None
    val = value.replace("\x00", "")
    val = bleach.clean(val, tags=set(), strip=True)
    val = val.strip()
    return val or None
