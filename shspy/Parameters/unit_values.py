class UnitValueLib:
    def __init__(self):
        self.hartree2kcalmol = 627.509 #
        self.bohr2angstroms = 0.52917721067 #
        self.angstrom2bohr = 1.0 / self.bohr2angstroms
        self.hartree2kjmol = 2625.500 #
        self.hartree2eV = 27.211396127707
        return
