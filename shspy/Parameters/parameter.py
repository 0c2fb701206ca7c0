### Unit conversion factors ###
from shspy.Parameters.unit_values import UnitValueLib

### Element symbols ordered by atomic number (index 0 is a placeholder) ###
ELEMENT_SYMBOLS = [
    "X",
    "H", "He",
    "Li", "Be", "B", "C", "N", "O", "F", "Ne",
    "Na", "Mg", "Al", "Si", "P", "S", "Cl", "Ar",
    "K", "Ca", "Sc", "Ti", "V", "Cr", "Mn", "Fe", "Co", "Ni", "Cu", "Zn",
    "Ga", "Ge", "As", "Se", "Br", "Kr",
    "Rb", "Sr", "Y", "Zr", "Nb", "Mo", "Tc", "Ru", "Rh", "Pd", "Ag", "Cd",
    "In", "Sn", "Sb", "Te", "I", "Xe",
]


def number_element(number):
    number = int(number)
    if number <= 0 or number >= len(ELEMENT_SYMBOLS):
        raise ValueError(f"Unsupported atomic number: {number}")
    return ELEMENT_SYMBOLS[number]


def element_number(symbol):
    symbol = symbol.strip().capitalize()
    if symbol not in ELEMENT_SYMBOLS[1:]:
        raise ValueError(f"Unsupported element symbol: {symbol}")
    return ELEMENT_SYMBOLS.index(symbol)
