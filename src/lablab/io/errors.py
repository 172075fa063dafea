"""
Custom exceptions for the lablab.io module.

Purpose
- Provide IO-layer specific error types for the JSON document store.
- Keep lablab.core as the source of truth for contract errors (see lablab.core.errors).

Source of truth and boundaries
- lablab.core.errors.SchemaError / GrammarError are raised by core validators/models.
- lablab.io raises Io* errors for filesystem concerns:
  - IoConfigError: invalid or unsupported configuration.
  - IoReadError: a document exists but could not be read or decoded.
  - IoWriteError: atomic write path failed (tmp write/fsync/rename).

Notes
- These exceptions do not perform any IO and are stdlib-only.
"""

from __future__ import annotations


class IoError(Exception):
    """
    Base class for IO-related errors in lablab.io.

    Notes:
        Use this as a catch-all for IO-layer failures, distinct from lablab.core errors.
    """


class IoConfigError(IoError):
    """
    Raised when store configuration is invalid or unsupported.

    Examples:
        - Unknown collection name
        - Document id that would escape the collection directory
    """


class IoReadError(IoError):
    """Raised when a stored document cannot be read or is not valid JSON."""


class IoWriteError(IoError):
    """
    Raised when a document write fails to complete atomically.

    Notes:
        The write path is tmp file -> fsync -> os.replace(tmp, final). Failures at any step
        surface as IoWriteError (with best-effort cleanup of tmp files).
    """
