"""
Personal Organizer - Core Package

The domain core of a personal-productivity application: tasks,
notes and finance tracking over local storage.

DESIGN PRINCIPLES:
1. In-memory state is the source of truth
2. Persistence is a whole-collection, best-effort mirror
3. Every mutation goes through a collection manager
4. Unknown ids fail loudly, never silently
5. Every significant action is audited
"""

__version__ = "1.0.0"
__author__ = "Personal Organizer Team"
