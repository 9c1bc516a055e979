"""Loader for binary ``.msh`` tetrahedron and triangle meshes.

Layout (all binary integers little-endian u32, floats f64)::

    $MeshFormat\\n <version> 1 8\\n <u32 1> $EndMeshFormat\\n
    $Nodes\\n <ascii count>\\n  { <u32 id> <f64 x> <f64 y> <f64 z> } $EndNodes\\n
    $Elements\\n <ascii count>\\n
      { <u32 type> <u32 n> <u32 tags>  n * { <u32 id> tags * <u32> <u32 node>... } }
    [$EndElements\\n]

Element type 2 is a triangle, 4 a tetrahedron. Node ids are 1-based in the
file and 0-based in the returned arrays.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Tuple

import numpy as np

from .errors import (
    BadElementTypeError,
    BadHeaderError,
    BadIntegerError,
    BadValueError,
    NodeIndexError,
    UnexpectedEndOfFileError,
)

logger = logging.getLogger(__name__)

TRIANGLE = 2
TETRAHEDRON = 4
_NODES_PER_ELEMENT = {TRIANGLE: 3, TETRAHEDRON: 4}

_U32 = struct.Struct("<I")
_NODE = struct.Struct("<Iddd")


@dataclass
class ElementMesh:
    nodes: np.ndarray  # (N, 3) float64
    elements: np.ndarray  # (K, nodes_per_element) int64, 0-based

    @property
    def num_nodes(self) -> int:
        return len(self.nodes)

    @property
    def num_elements(self) -> int:
        return len(self.elements)

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        if self.num_nodes == 0:
            return np.zeros(3), np.zeros(3)
        return self.nodes.min(axis=0), self.nodes.max(axis=0)


@dataclass
class TetrahedronMesh(ElementMesh):
    pass


@dataclass
class TriangleMesh(ElementMesh):
    pass


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def expect(self, token: str) -> None:
        raw = token.encode("ascii")
        found = self.data[self.offset:self.offset + len(raw)]
        if found != raw:
            if len(found) < len(raw) and raw.startswith(found):
                raise UnexpectedEndOfFileError(self.offset + len(found))
            raise BadHeaderError(token, found, self.offset)
        self.offset += len(raw)

    def until(self, delimiter: bytes) -> bytes:
        end = self.data.find(delimiter, self.offset)
        if end < 0:
            raise UnexpectedEndOfFileError(len(self.data))
        token = self.data[self.offset:end]
        self.offset = end + len(delimiter)
        return token

    def ascii_int(self) -> int:
        start = self.offset
        token = self.until(b"\n")
        try:
            value = int(token.decode("ascii").strip())
        except (UnicodeDecodeError, ValueError) as exc:
            raise BadIntegerError(start) from exc
        if value < 0:
            raise BadIntegerError(start)
        return value

    def u32(self) -> int:
        if self.offset + _U32.size > len(self.data):
            raise UnexpectedEndOfFileError(self.offset)
        (value,) = _U32.unpack_from(self.data, self.offset)
        self.offset += _U32.size
        return value

    def u32_array(self, count: int) -> np.ndarray:
        nbytes = 4 * count
        if self.offset + nbytes > len(self.data):
            raise UnexpectedEndOfFileError(len(self.data))
        values = np.frombuffer(self.data, dtype="<u4", count=count, offset=self.offset)
        self.offset += nbytes
        return values.astype(np.int64)

    def node(self) -> Tuple[float, float, float]:
        if self.offset + _NODE.size > len(self.data):
            raise UnexpectedEndOfFileError(self.offset)
        _, x, y, z = _NODE.unpack_from(self.data, self.offset)
        for i, value in enumerate((x, y, z)):
            if not np.isfinite(value):
                raise BadValueError(self.offset + 4 + 8 * i)
        self.offset += _NODE.size
        return x, y, z

    def at_end(self) -> bool:
        return self.offset >= len(self.data)


def _parse(data: bytes, element_type: int) -> Tuple[np.ndarray, np.ndarray]:
    reader = _Reader(data)

    reader.expect("$MeshFormat\n")
    version_start = reader.offset
    version = reader.until(b" ")
    if not version:
        raise BadValueError(version_start)
    reader.expect("1 8\n")
    one_offset = reader.offset
    if reader.u32() != 1:
        raise BadIntegerError(one_offset)
    reader.expect("$EndMeshFormat\n")

    reader.expect("$Nodes\n")
    num_nodes = reader.ascii_int()
    if num_nodes * _NODE.size > len(reader.data) - reader.offset:
        raise UnexpectedEndOfFileError(len(reader.data))
    nodes = np.empty((num_nodes, 3), dtype=np.float64)
    for i in range(num_nodes):
        nodes[i] = reader.node()
    reader.expect("$EndNodes\n")

    reader.expect("$Elements\n")
    num_elements = reader.ascii_int()
    per_element = _NODES_PER_ELEMENT[element_type]
    blocks = []
    read = 0
    while read < num_elements:
        type_offset = reader.offset
        block_type = reader.u32()
        if block_type != element_type:
            raise BadElementTypeError(block_type, type_offset)
        count = reader.u32()
        num_tags = reader.u32()
        block_start = reader.offset
        row = 1 + num_tags + per_element
        values = reader.u32_array(count * row).reshape(count, row)
        connectivity = values[:, 1 + num_tags:] - 1
        bad = (connectivity < 0) | (connectivity >= num_nodes)
        if bad.any():
            elem, slot = np.argwhere(bad)[0]
            offset = block_start + 4 * (elem * row + 1 + num_tags + slot)
            raise NodeIndexError(int(connectivity[elem, slot]) + 1, num_nodes, int(offset))
        blocks.append(connectivity)
        read += count
        if count == 0 and read < num_elements:
            # An empty block cannot make progress
            raise BadIntegerError(type_offset + 4)

    if not reader.at_end():
        reader.expect("$EndElements\n")

    elements = np.concatenate(blocks) if blocks else np.empty((0, per_element), dtype=np.int64)
    return nodes, elements


def parse_msh(data: bytes) -> TetrahedronMesh:
    nodes, elements = _parse(data, TETRAHEDRON)
    return TetrahedronMesh(nodes=nodes, elements=elements)


def parse_triangle_msh(data: bytes) -> TriangleMesh:
    nodes, elements = _parse(data, TRIANGLE)
    return TriangleMesh(nodes=nodes, elements=elements)


_mesh_cache: Dict[Tuple[Path, int], ElementMesh] = {}


def _load(path: str | Path, element_type: int) -> ElementMesh:
    path = Path(path).expanduser().resolve()
    key = (path, element_type)
    if key in _mesh_cache:
        return _mesh_cache[key]
    if not path.exists():
        raise FileNotFoundError(f"MSH mesh file not found: {path}")
    data = path.read_bytes()
    if element_type == TETRAHEDRON:
        mesh = parse_msh(data)
    else:
        mesh = parse_triangle_msh(data)
    logger.info("Loaded %s: %d nodes, %d elements", path.name, mesh.num_nodes, mesh.num_elements)
    _mesh_cache[key] = mesh
    return mesh


def load_msh(path: str | Path) -> TetrahedronMesh:
    """Load a binary tetrahedron mesh."""
    return _load(path, TETRAHEDRON)


def load_triangle_msh(path: str | Path) -> TriangleMesh:
    """Load a binary triangle surface mesh."""
    return _load(path, TRIANGLE)


def encode_msh(mesh: ElementMesh, version: str = "2.2") -> bytes:
    """Serialise ``mesh`` in the binary layout read by :func:`parse_msh`."""
    per_element = mesh.elements.shape[1] if mesh.elements.ndim == 2 else 4
    element_type = TETRAHEDRON if per_element == 4 else TRIANGLE
    parts = [
        f"$MeshFormat\n{version} 1 8\n".encode("ascii"),
        _U32.pack(1),
        b"$EndMeshFormat\n$Nodes\n",
        f"{mesh.num_nodes}\n".encode("ascii"),
    ]
    for i, (x, y, z) in enumerate(mesh.nodes, start=1):
        parts.append(_NODE.pack(i, x, y, z))
    parts.append(b"$EndNodes\n$Elements\n")
    parts.append(f"{mesh.num_elements}\n".encode("ascii"))
    if mesh.num_elements:
        parts.append(struct.pack("<III", element_type, mesh.num_elements, 0))
        for i, element in enumerate(mesh.elements, start=1):
            parts.append(struct.pack(f"<I{per_element}I", i, *(int(n) + 1 for n in element)))
    parts.append(b"$EndElements\n")
    return b"".join(parts)
