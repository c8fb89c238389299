"""Rate limiting adapters.

Fixed-window limiting over an abstract counter store, plus the immutable
policies naming what each protected operation is allowed.
"""
