"""
Core domain models, mathematical primitives, contracts and errors.

This module contains the foundational building blocks that are independent
of external systems (price sources, vault storage, fund lifecycle).
"""
