"""orgscope: hierarchy-aware access-scope engine."""

__version__ = "1.0.0"
