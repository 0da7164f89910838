"""Calendar layout engine.

Buckets bookings into the day columns of a :class:`~.window.ViewWindow`,
packs overlapping bookings into side-by-side columns and projects them onto a
fixed-height time grid.
"""
