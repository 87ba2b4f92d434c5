"""
Core package: records, identifiers, errors and validation rules.

Architecture:
- Plain dataclass records for domains, extensions, entries and actions
- Closed enums for load state, mount state and action kinds
- Contract rules checked between an entry and a domain
- Package derivation from extension ids

Cross-cutting:
- Error taxonomy shared by every other package
- No I/O and no event loop dependencies
"""
