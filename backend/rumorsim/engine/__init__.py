"""Pure round-resolution engine.

Contains the bounded world model, the rumor-event catalog, the
deterministic resolution function, and the integrity hashing layer. Nothing
in this package performs I/O.
"""
