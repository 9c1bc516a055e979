"""Binary .msh reader tests."""

from __future__ import annotations

import struct

import numpy as np
import pytest

from mpm_engine.errors import (
    BadElementTypeError,
    BadHeaderError,
    BadIntegerError,
    MeshFormatError,
    NodeIndexError,
    UnexpectedEndOfFileError,
)
from mpm_engine.mesh_utils import (
    TetrahedronMesh,
    TriangleMesh,
    encode_msh,
    load_msh,
    load_triangle_msh,
    parse_msh,
    parse_triangle_msh,
)

# "$MeshFormat\n" + "2.2 " + "1 8\n"
ONE_OFFSET = 20


def _element_type_offset(data: bytes) -> int:
    start = data.index(b"$Elements\n") + len(b"$Elements\n")
    return data.index(b"\n", start) + 1


def test_encoded_mesh_parses_back(unit_cube_mesh):
    mesh = parse_msh(encode_msh(unit_cube_mesh))
    np.testing.assert_array_equal(mesh.nodes, unit_cube_mesh.nodes)
    np.testing.assert_array_equal(mesh.elements, unit_cube_mesh.elements)
    assert mesh.num_elements == 6
    lo, hi = mesh.bounds()
    np.testing.assert_array_equal(lo, (0.0, 0.0, 0.0))
    np.testing.assert_array_equal(hi, (1.0, 1.0, 1.0))


def test_end_elements_marker_is_optional(unit_tetra):
    data = encode_msh(unit_tetra)
    assert data.endswith(b"$EndElements\n")
    mesh = parse_msh(data[: -len(b"$EndElements\n")])
    np.testing.assert_array_equal(mesh.elements, [[0, 1, 2, 3]])


def test_triangle_mesh():
    triangles = TriangleMesh(
        nodes=np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]),
        elements=np.array([[0, 1, 2]]),
    )
    mesh = parse_triangle_msh(encode_msh(triangles))
    assert isinstance(mesh, TriangleMesh)
    np.testing.assert_array_equal(mesh.elements, [[0, 1, 2]])
    with pytest.raises(BadElementTypeError) as info:
        parse_msh(encode_msh(triangles))
    assert info.value.element_type == 2


def test_bad_header():
    with pytest.raises(BadHeaderError) as info:
        parse_msh(b"$MeshFmt\n2.2 1 8\n")
    assert info.value.offset == 0


def test_bad_element_type(unit_tetra):
    data = bytearray(encode_msh(unit_tetra))
    offset = _element_type_offset(bytes(data))
    data[offset:offset + 4] = struct.pack("<I", 5)
    with pytest.raises(BadElementTypeError) as info:
        parse_msh(bytes(data))
    assert info.value.offset == offset
    assert info.value.element_type == 5


def test_binary_one_is_checked(unit_tetra):
    data = bytearray(encode_msh(unit_tetra))
    data[ONE_OFFSET:ONE_OFFSET + 4] = struct.pack("<I", 2)
    with pytest.raises(BadIntegerError) as info:
        parse_msh(bytes(data))
    assert info.value.offset == ONE_OFFSET


def test_bad_node_count(unit_tetra):
    data = encode_msh(unit_tetra).replace(b"$Nodes\n4\n", b"$Nodes\nfour\n")
    with pytest.raises(BadIntegerError):
        parse_msh(data)


def test_node_count_beyond_payload(unit_tetra):
    data = encode_msh(unit_tetra).replace(b"$Nodes\n4\n", b"$Nodes\n999999999999\n")
    with pytest.raises(UnexpectedEndOfFileError) as info:
        parse_msh(data)
    assert isinstance(info.value, MeshFormatError)
    assert info.value.offset == len(data)


def test_node_index_out_of_range(unit_tetra):
    broken = TetrahedronMesh(nodes=unit_tetra.nodes, elements=np.array([[0, 1, 2, 7]]))
    data = encode_msh(broken)
    with pytest.raises(NodeIndexError) as info:
        parse_msh(data)
    assert info.value.index == 8
    assert info.value.num_nodes == 4
    assert struct.unpack_from("<I", data, info.value.offset)[0] == 8


@pytest.mark.parametrize("keep", [10, 60, -20])
def test_truncated_file(unit_tetra, keep):
    data = encode_msh(unit_tetra)
    with pytest.raises(UnexpectedEndOfFileError):
        parse_msh(data[:keep])


def test_mesh_errors_are_value_errors():
    with pytest.raises(ValueError):
        parse_msh(b"garbage")
    assert issubclass(MeshFormatError, ValueError)


def test_load_from_disk(tmp_path, unit_cube_mesh):
    path = tmp_path / "cube.msh"
    path.write_bytes(encode_msh(unit_cube_mesh))
    mesh = load_msh(path)
    assert mesh.num_nodes == 8
    assert load_msh(str(path)) is mesh

    with pytest.raises(BadElementTypeError):
        load_triangle_msh(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_msh(tmp_path / "missing.msh")
