"""
Extension points around mounting.

Architecture:
- Loader handlers turn entries into mount lifecycles
- Container providers and isolation factories supply mount targets
- Bridge pairs connect a mounted fragment to the host

Security:
- Fragments only hold their child bridge, never host internals
- Disposed bridges reject further use
"""
