"""
Request identifiers used to correlate profiling data with a logical request.
"""
import secrets
import string
import time

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 9


def generate_request_id() -> str:
    """
    Generate a process-unique request identifier.

    The format is ``req_<epoch millis>_<9 base-36 chars>``, e.g.
    ``req_1760745600000_k3j9x0a2b``.
    """
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"req_{time.time_ns() // 1_000_000}_{suffix}"
