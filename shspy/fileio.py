import logging

import numpy as np

from shspy.Parameters.parameter import element_number

logger = logging.getLogger(__name__)


def read_software_path(file_path="./software_path.conf"):
    logger.info("Reading software path from %s", file_path)
    with open(file_path, "r") as f:
        words = f.read().splitlines()
    software_path_dict = {}
    for word in words:
        if not word.strip() or "::" not in word:
            continue
        soft_name, soft_path = word.split("::", 1)
        software_path_dict[soft_name.strip()] = soft_path.strip()
    return software_path_dict


# ====================================================================================
# Chemcraft xyz blocks: atom count, label line, "Z x y z" lines (Angstrom)
# ====================================================================================

def to_chemcraft_coords(charges, structure, label=""):
    coords = np.asarray(structure, dtype="float64").reshape(-1, 3)
    if len(coords) != len(charges):
        raise ValueError(f"{len(charges)} charges for a structure of {len(coords)} atoms")
    lines = [str(len(charges)), label]
    for charge, (x, y, z) in zip(charges, coords):
        lines.append(f"{charge}\t{x:.11f}\t{y:.11f}\t{z:.11f}")
    return "\n".join(lines) + "\n"


def append_structure(stream, charges, structure, label=""):
    stream.write(to_chemcraft_coords(charges, structure, label))
    stream.flush()


def _parse_atom_token(token):
    if token.isdigit():
        return int(token)
    return element_number(token)


def read_chemcraft(file_path):
    """
    Read the first structure of an xyz/chemcraft file.

    Atoms may be given by atomic number or element symbol.
    Returns (charges, flat structure in Angstrom).
    """
    with open(file_path, "r") as f:
        lines = f.read().splitlines()
    if not lines:
        raise ValueError(f"Empty structure file: {file_path}")
    try:
        n_atoms = int(lines[0].split()[0])
    except (IndexError, ValueError) as exc:
        raise ValueError(f"First line of {file_path} must hold the atom count") from exc
    atom_lines = lines[2:2 + n_atoms]
    if len(atom_lines) != n_atoms:
        raise ValueError(f"{file_path}: expected {n_atoms} atoms, found {len(atom_lines)}")

    charges, coords = [], []
    for line in atom_lines:
        words = line.split()
        if len(words) < 4:
            raise ValueError(f"{file_path}: malformed atom line '{line}'")
        charges.append(_parse_atom_token(words[0]))
        coords.append([float(w) for w in words[1:4]])
    return charges, np.array(coords, dtype="float64").reshape(-1)


# ====================================================================================
# Count-prefixed vector lists
# ====================================================================================

def write_vector_list(file_path, vectors, precision=21):
    with open(file_path, "w") as f:
        f.write(f"{len(vectors)}\n")
        for vec in vectors:
            f.write(f"{len(vec)}\n")
            f.write(" ".join(f"{v:.{precision}f}" for v in vec) + "\n")


def read_vector_list(file_path):
    with open(file_path, "r") as f:
        tokens = f.read().split()
    if not tokens:
        return []
    count = int(tokens[0])
    position = 1
    vectors = []
    for _ in range(count):
        size = int(tokens[position])
        values = tokens[position + 1:position + 1 + size]
        if len(values) != size:
            raise ValueError(f"{file_path}: truncated vector list")
        vectors.append(np.array([float(v) for v in values], dtype="float64"))
        position += size + 1
    return vectors


def write_es_directions(file_path, charges, structure, directions):
    with open(file_path, "w") as f:
        f.write(to_chemcraft_coords(charges, structure, "ES"))
        f.write(f"{len(directions)}\n")
        for direction in directions:
            f.write(" ".join(f"{v:.17f}" for v in direction) + "\n")


def print_path_to_file(charges, path, start_es, end_es, output_path):
    with open(output_path, "w") as f:
        if start_es is not None:
            f.write(to_chemcraft_coords(charges, start_es, "start ES"))
        for j, structure in enumerate(path):
            f.write(to_chemcraft_coords(charges, structure, str(j)))
        if end_es is not None:
            f.write(to_chemcraft_coords(charges, end_es, "end ES"))
