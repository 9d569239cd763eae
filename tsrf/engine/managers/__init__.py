"""Document diffing for the synchronization engine.

Each module provides pure functions that take the current JSON document and
return the document to write, or ``None`` when nothing needs to change.
They never read or write files -- that is the synchronizer's responsibility.
"""
