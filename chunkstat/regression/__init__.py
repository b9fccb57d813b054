"""
Incremental least squares (FROZEN)

Invariants:
- The design matrix X and X^T X are never materialized.
- State is one upper-triangular factor R with R^T R == [X 1 y]^T [X 1 y].
- Diagonal entries of R are non-negative.
- combine(R_a, R_b) is order independent up to rounding.
"""
