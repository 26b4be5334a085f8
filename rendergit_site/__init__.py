"""
Render a git repository as a browsable static site: one page per branch,
one page per commit and one page per distinct blob, rebuilt incrementally.
"""

__version__ = "1.0.0"
