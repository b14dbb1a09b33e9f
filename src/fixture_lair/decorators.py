# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Method decorators shared by the RecordStore public operations.

- assert_has_type: first positional argument must be a registered type
- assert_crud_options: every ``ignore_related`` type must be registered
- verbose: log execution time and result size when ``config.verbose`` is on
"""

import functools
import json
import logging
import time
from typing import Any, Callable, TypeVar, cast

from fixture_lair.errors import UnknownIgnoredType, UnknownType

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def assert_has_type(method: F) -> F:
    @functools.wraps(method)
    def wrapper(self: Any, type_name: str, *args: Any, **kwargs: Any) -> Any:
        if not self.has_type(type_name):
            raise UnknownType(type_name)
        return method(self, type_name, *args, **kwargs)

    return cast(F, wrapper)


def assert_crud_options(method: F) -> F:
    @functools.wraps(method)
    def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
        ignore_related = kwargs.get("ignore_related")
        if isinstance(ignore_related, (list, tuple, set)):
            for type_name in ignore_related:
                if not self.has_type(type_name):
                    raise UnknownIgnoredType(type_name)
        return method(self, *args, **kwargs)

    return cast(F, wrapper)


def _format_arg(arg: Any) -> str:
    if callable(arg):
        return "callback"
    try:
        return json.dumps(arg)
    except (TypeError, ValueError):
        return repr(arg)


def verbose(method: F) -> F:
    """Log how long the call took (and how many items it returned)."""

    @functools.wraps(method)
    def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
        start = time.perf_counter()
        result = method(self, *args, **kwargs)
        if self.config.verbose:
            elapsed_ms = (time.perf_counter() - start) * 1000
            str_args = ", ".join(
                [_format_arg(arg) for arg in args]
                + [f"{key}={_format_arg(value)}" for key, value in kwargs.items()]
            )
            logger.info(
                f"{method.__name__} (args - [{str_args}]) execution time: {elapsed_ms:.3f} ms",
                extra={
                    "extra_fields": {
                        "operation": method.__name__,
                        "elapsed_ms": round(elapsed_ms, 3),
                    }
                },
            )
            if isinstance(result, list):
                logger.info(f"Result: {len(result)} item(s)")
        return result

    return cast(F, wrapper)
