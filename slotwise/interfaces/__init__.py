"""
Interfaces the runtime consumes: the type system plugin, fragment mount
lifecycles and action handlers.
"""
