"""Stack-based bytecode interpreter, verifier and runtime for Quantum smart contracts."""

__version__ = "0.1.0"

__all__ = [
    "arithmetic",
    "bytecode",
    "checks",
    "instructions",
    "interpreter",
    "runtime",
    "types",
    "values",
    "verifier",
]