"""
Correlate package: expose linker functionality for relating issues to each other.
"""

from .linker import link_related_issues, find_issue_references

__all__ = ["link_related_issues", "find_issue_references"]
