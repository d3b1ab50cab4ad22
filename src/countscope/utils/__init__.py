"""Shared utilities."""

from countscope.utils.fileio import atomic_write_json, to_jsonable

__all__ = ['atomic_write_json', 'to_jsonable']
