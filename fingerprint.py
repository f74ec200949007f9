"""Content fingerprinting - maps page content to a fixed-length cache key."""

import hashlib

DEFAULT_NAMESPACE = "summary:"


def well_formed(text: str) -> str:
    """
    Replace lone UTF-16 surrogates with U+FFFD.

    JSON may carry escapes like "\\ud800" that are not encodable as UTF-8.
    Adjacent high/low halves are joined into one code point.
    """
    return text.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "replace")


def fingerprint(content: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    """
    Return `namespace + hex(sha256(utf-8 content))`.

    Why hash?
    - Page content can be megabytes; the key stays 64 hex chars + prefix
    - Deterministic: same content always maps to the same entry
    - Namespace prefix keeps summary keys apart from other key families in a shared store

    No normalization happens here: "The sky is blue." and "The sky is Blue."
    are different entries. Lone surrogates hash as U+FFFD.
    """
    digest = hashlib.sha256(well_formed(content).encode("utf-8")).hexdigest()
    return f"{namespace}{digest}"
