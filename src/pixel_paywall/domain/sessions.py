"""Session identifiers."""

import secrets
import string
import time

_BASE36 = string.digits + string.ascii_lowercase


def new_session_id() -> str:
    """Return a new opaque session id of the form ``session_<ms>_<suffix>``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"
