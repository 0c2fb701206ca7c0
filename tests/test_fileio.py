import io

import numpy as np
import pytest

from shspy.Parameters.parameter import element_number, number_element
from shspy.fileio import (
    append_structure,
    print_path_to_file,
    read_chemcraft,
    read_software_path,
    read_vector_list,
    to_chemcraft_coords,
    write_es_directions,
    write_vector_list,
)

WATER = np.array([0.0, 0.0, 0.117, 0.0, 0.757, -0.469, 0.0, -0.757, -0.469])


def test_chemcraft_round_trip(tmp_path):
    path = tmp_path / "water.xyz"
    path.write_text(to_chemcraft_coords([8, 1, 1], WATER, "water"))

    charges, structure = read_chemcraft(str(path))
    assert charges == [8, 1, 1]
    assert np.allclose(structure, WATER)


def test_read_chemcraft_accepts_element_symbols(tmp_path):
    path = tmp_path / "water.xyz"
    path.write_text("3\ncomment\nO 0.0 0.0 0.117\nH 0.0 0.757 -0.469\nH 0.0 -0.757 -0.469\n")
    charges, structure = read_chemcraft(str(path))
    assert charges == [8, 1, 1]
    assert structure.shape == (9,)


def test_read_chemcraft_rejects_truncated_file(tmp_path):
    path = tmp_path / "broken.xyz"
    path.write_text("3\ncomment\nO 0.0 0.0 0.117\n")
    with pytest.raises(ValueError):
        read_chemcraft(str(path))


def test_to_chemcraft_coords_checks_atom_count():
    with pytest.raises(ValueError):
        to_chemcraft_coords([8, 1], WATER)


def test_append_structure_writes_labelled_blocks():
    stream = io.StringIO()
    append_structure(stream, [8, 1, 1], WATER, "0")
    append_structure(stream, [8, 1, 1], WATER, "1")
    lines = stream.getvalue().splitlines()
    assert len(lines) == 10
    assert lines[1] == "0" and lines[6] == "1"
    assert lines[2].split("\t")[0] == "8"


def test_vector_list_round_trip(tmp_path):
    path = str(tmp_path / "vectors")
    vectors = [np.array([0.1, -0.2, 1.0 / 3.0]), np.array([1e-9, 2.5])]
    write_vector_list(path, vectors)
    loaded = read_vector_list(path)
    assert len(loaded) == 2
    assert np.allclose(loaded[0], vectors[0], rtol=0.0, atol=1e-15)
    assert np.allclose(loaded[1], vectors[1])


def test_read_empty_vector_list(tmp_path):
    path = tmp_path / "empty"
    path.write_text("")
    assert read_vector_list(str(path)) == []


def test_es_directions_file(tmp_path):
    path = tmp_path / "0"
    write_es_directions(str(path), [8, 1, 1], WATER, [np.array([0.05, 0.0, 0.0]), np.array([0.0, -0.05, 0.0])])
    lines = path.read_text().splitlines()
    assert lines[1] == "ES"
    assert lines[5] == "2"
    assert np.allclose([float(v) for v in lines[7].split()], [0.0, -0.05, 0.0])


def test_path_file_labels(tmp_path):
    path = tmp_path / "0.xyz"
    print_path_to_file([8, 1, 1], [WATER, WATER], WATER, WATER, str(path))
    labels = path.read_text().splitlines()[1::5]
    assert labels == ["start ES", "0", "1", "end ES"]


def test_read_software_path(tmp_path):
    path = tmp_path / "software_path.conf"
    path.write_text("gaussian::/opt/g16/g16\n\nformchk:: /opt/g16/formchk \nnot a setting\n")
    paths = read_software_path(str(path))
    assert paths == {"gaussian": "/opt/g16/g16", "formchk": "/opt/g16/formchk"}


def test_element_lookup():
    assert number_element(18) == "Ar"
    assert element_number("Ar") == 18
    assert element_number("ar") == 18
    with pytest.raises(ValueError):
        element_number("Qq")
