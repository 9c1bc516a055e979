"""Exception types raised by the MPM engine."""

from __future__ import annotations

from typing import Optional


class MPMError(Exception):
    """Base class for all engine errors."""


class NumericalError(MPMError, ArithmeticError):
    """The simulation left its valid physical regime.

    Raised for NaN interpolation weights, non-positive Jacobians and SVD
    failures. The step that raised it is not recoverable.
    """

    def __init__(self, message: str, stage: Optional[str] = None):
        self.stage = stage
        if stage is not None:
            message = f"[{stage}] {message}"
        super().__init__(message)


class MeshFormatError(MPMError, ValueError):
    """A binary mesh file could not be parsed."""

    def __init__(self, message: str, offset: int):
        self.offset = offset
        super().__init__(f"{message} (at byte offset {offset})")


class BadHeaderError(MeshFormatError):
    def __init__(self, expected: str, found: bytes, offset: int):
        self.expected = expected
        self.found = found
        super().__init__(f"expected {expected!r}, found {found!r}", offset)


class BadValueError(MeshFormatError):
    def __init__(self, offset: int):
        super().__init__("cannot read floating point value", offset)


class BadIntegerError(MeshFormatError):
    def __init__(self, offset: int):
        super().__init__("cannot read integer value", offset)


class BadElementTypeError(MeshFormatError):
    def __init__(self, element_type: int, offset: int):
        self.element_type = element_type
        super().__init__(f"unsupported element type {element_type}", offset)


class NodeIndexError(MeshFormatError):
    def __init__(self, index: int, num_nodes: int, offset: int):
        self.index = index
        self.num_nodes = num_nodes
        super().__init__(f"node index {index} outside 1..{num_nodes}", offset)


class UnexpectedEndOfFileError(MeshFormatError):
    def __init__(self, offset: int):
        super().__init__("unexpected end of file", offset)
