"""melody: pairwise song comparisons converging on an ELO ranking."""

__version__ = "1.0.0"
