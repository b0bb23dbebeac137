import json
from typing import Any, List, Optional, Type, TypeVar, cast, get_origin

from .logging import cbadmin_warning

T = TypeVar("T")


def dumps_with_ellipsis(obj: Any, limit: int = 100) -> str:
    """
    Truncate the JSON form of an object to a specified length and add an ellipsis
    in the middle for the truncated characters.

    Args:
        obj (Any): The object to serialize and truncate.
        limit (int): The maximum length of the resulting string, including the ellipsis. Default is 100.

    Returns:
        str: The truncated string with an ellipsis in the middle if it exceeds the limit.
    """
    text = obj if isinstance(obj, str) else json.dumps(obj)
    if len(text) <= limit:
        return text

    # Calculate the length of each half, accounting for the ellipsis (3 characters)
    half_length = (limit - 3) // 2
    return f"{text[:half_length]}...{text[-half_length:]}"


def _get_string_list(d: dict, key: str) -> Optional[List[str]]:
    if key not in d:
        return None

    ret_val = d[key]
    if not isinstance(ret_val, list):
        raise ValueError(f"Expecting an array for key {key} but found {type(ret_val)}!")

    for x in ret_val:
        if not isinstance(x, str):
            raise ValueError(
                f"Expecting an array of strings for {key} but found {x} inside!"
            )

    return cast(List[str], ret_val)


def _assert_string_entry(d: dict, key: str) -> str:
    if key not in d:
        raise ValueError(f"Missing required key {key} in dictionary!")

    ret_val = d[key]
    if not isinstance(ret_val, str):
        raise ValueError(f"Expecting string for key {key} but found {ret_val}")

    return ret_val


def _get_number_or_default(d: dict, key: str, default: float) -> float:
    if key not in d:
        cbadmin_warning(f"{key} not present in dictionary, using default {default}!")
        return default

    ret_val = d[key]
    if isinstance(ret_val, bool) or not isinstance(ret_val, (int, float)):
        raise ValueError(f"Expecting a number for key {key} but found {ret_val} instead")

    return float(ret_val)


def _get_int_or_default(d: dict, key: str, default: int) -> int:
    if key not in d:
        cbadmin_warning(f"{key} not present in dictionary, using default {default}!")
        return default

    ret_val = d[key]
    if isinstance(ret_val, bool) or not isinstance(ret_val, int):
        raise ValueError(f"Expecting an int for key {key} but found {ret_val} instead")

    return cast(int, ret_val)


def _get_str_or_default(d: dict, key: str, default: str) -> str:
    if key not in d:
        cbadmin_warning(f"{key} not present in dictionary, using default {default}!")
        return default

    ret_val = d[key]
    if not isinstance(ret_val, str):
        raise ValueError(
            f"Expecting a string for key {key} but found {ret_val} instead"
        )

    return cast(str, ret_val)


def _get_typed(d: dict, key: str, type: Type[T]) -> Optional[T]:
    if key not in d:
        return None

    origin = get_origin(type)
    if origin is None:
        origin = type

    ret_val = d[key]
    if ret_val is None:
        return ret_val

    if not isinstance(ret_val, cast(Type, origin)):
        raise ValueError(
            f"Expecting {str(type)} for key {key} but found {ret_val} instead"
        )

    return cast(T, ret_val)


def _get_typed_nonnull(d: dict, key: str, type: Type[T], default: T) -> T:
    found_val = _get_typed(d, key, type)
    return found_val if found_val is not None else default
