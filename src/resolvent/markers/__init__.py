"""PEP 508 environment markers as a boolean algebra."""
from .tree import MarkerTree, StringSet, Atom, PYTHON_VERSION

__all__ = [
    "MarkerTree",
    "StringSet",
    "Atom",
    "PYTHON_VERSION",
]
