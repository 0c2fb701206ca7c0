"""
shspy - Scaled Hypersphere Search over a potential-energy surface.

Finds equilibrium structures and the transition states connecting them by
walking outward along low-energy directions found on small hyperspheres
around each known minimum.
"""

__version__ = "0.1.0"
