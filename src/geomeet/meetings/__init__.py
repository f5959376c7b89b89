"""In-person meeting module -- day windows, conflict resolution, lifecycle.

Provides the Pydantic schemas, the ProximityIndex contract and its SQL
implementation, the ConflictResolver, bucket locks, and the
MeetingLifecycleManager that decides whether a meeting may be created or
moved.
"""
