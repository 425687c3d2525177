from . import check, serve

__all__ = ['check', 'serve']
