"""
Runtime argument type checking for QuickLink.

Checks public method arguments against their type hints. Only active when the
QUICKLINK_TYPECHECK environment variable is "1" at import time (the test suite
sets it), so production runs pay nothing.
"""

import functools
import inspect
import os
import types
from pathlib import Path
from typing import get_type_hints, get_origin, get_args, Union


TYPECHECK_ENABLED = os.environ.get("QUICKLINK_TYPECHECK") == "1"


def _type_name(expected_type) -> str:
    return getattr(expected_type, '__name__', str(expected_type))


def _is_union(origin) -> bool:
    return origin is Union or origin is types.UnionType


def _check_type(value, expected_type, param_name: str):
    """Raise TypeError if value does not match expected_type."""
    origin = get_origin(expected_type)

    if value is None:
        if expected_type is type(None):
            return
        if _is_union(origin) and type(None) in get_args(expected_type):
            return
        raise TypeError(f"Parameter '{param_name}' expected {_type_name(expected_type)}, got None")

    if origin is None:
        if expected_type is Path:
            # Paths may be given as strings
            if not isinstance(value, (Path, str)):
                raise TypeError(f"Parameter '{param_name}' expected Path, got {type(value).__name__}")
        elif isinstance(expected_type, type) and not isinstance(value, expected_type):
            raise TypeError(f"Parameter '{param_name}' expected {expected_type.__name__}, "
                            f"got {type(value).__name__}")

    elif origin in (list, tuple, dict):
        if not isinstance(value, origin):
            raise TypeError(f"Parameter '{param_name}' expected {origin.__name__}, got {type(value).__name__}")
        # Element types only for plain List[X]
        args = get_args(expected_type)
        if origin is list and args and isinstance(args[0], type):
            for i, elem in enumerate(value):
                if not isinstance(elem, args[0]):
                    raise TypeError(f"Parameter '{param_name}[{i}]' expected {args[0].__name__}, "
                                    f"got {type(elem).__name__}")

    elif _is_union(origin):
        candidates = [arg for arg in get_args(expected_type) if arg is not type(None)]
        for arg in candidates:
            try:
                _check_type(value, arg, param_name)
                return
            except TypeError:
                continue
        raise TypeError(f"Parameter '{param_name}' expected one of {[_type_name(a) for a in candidates]}, "
                        f"got {type(value).__name__}")


def typecheck(func):
    """Decorator that checks function argument types against type hints."""
    if not TYPECHECK_ENABLED:
        return func

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            hints = get_type_hints(func)
        except Exception:
            return func(*args, **kwargs)

        bound = inspect.signature(func).bind_partial(*args, **kwargs)
        for param_name, value in bound.arguments.items():
            if param_name in hints and param_name != 'return':
                _check_type(value, hints[param_name], param_name)

        return func(*args, **kwargs)

    return wrapper


def typecheck_methods(cls):
    """Class decorator that applies typecheck to __init__ and all public methods."""
    if not TYPECHECK_ENABLED:
        return cls

    for name, method in inspect.getmembers(cls, predicate=inspect.isfunction):
        if name.startswith('_') and name != '__init__':
            continue
        if isinstance(inspect.getattr_static(cls, name), staticmethod):
            setattr(cls, name, staticmethod(typecheck(method)))
        else:
            setattr(cls, name, typecheck(method))

    return cls
