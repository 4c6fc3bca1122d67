"""
Work Items module.

- Work items carry a type-specific lifecycle phase (the phase doubles as the item's lifecycle state)
- Every create, transition, edit and archive passes through the phase authorization guard
- Items are archived, never hard-deleted
"""
