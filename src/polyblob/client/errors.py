"""Turns adapter-native errors into taxonomy exceptions at the facade boundary."""

import logging
from typing import Any, Optional

from ..driver.base import AbstractBlobStore
from ..exceptions import BlobStoreError, ErrorKind, normalize_error

log = logging.getLogger(__name__)


def translate_error(classifier: Any, error: BaseException, key: Optional[str] = None) -> BlobStoreError:
    """Classify ``error`` with ``classifier.get_exception_kind`` and wrap it.

    Classification is not supposed to raise. If it does anyway the error is
    reported as UNKNOWN rather than losing the original failure.
    """
    try:
        kind = classifier.get_exception_kind(error)
    except Exception as classification_error:
        log.warning(
            "Classification of %s failed (%s); reporting it as %s",
            type(error).__name__,
            classification_error,
            ErrorKind.UNKNOWN.value,
        )
        kind = ErrorKind.UNKNOWN
    return normalize_error(kind, error, key=key)


def translate_build_error(error: BaseException) -> BlobStoreError:
    """Wrap a failure raised while a builder opened its native client."""
    kind = AbstractBlobStore.classify_common(error) or ErrorKind.UNKNOWN
    return normalize_error(kind, error)
