import os
import re


# A bracketed list index, e.g. "[3]" or "[ 3 ]".
_INDEX_PATTERN = re.compile(r'\[\s*([^\[\]]*?)\s*\]')
_SEPARATOR_PATTERN = re.compile(r'[/\\]')


def normalize_path(raw_path: str) -> str:
    """
    Canonicalize a hierarchical field path into a dotted key.

    Slashes and backslashes become dots and bracketed indices are appended as
    plain segments, so ``ThingDef/Steel.comps[0].label`` and
    ``ThingDef.Steel.comps.0.label`` normalize to the same key.

    Args:
        raw_path: The host-specific field path.

    Returns:
        The canonical path. Never empty unless the input was empty.
    """
    if not raw_path:
        return ''

    path = _SEPARATOR_PATTERN.sub('.', raw_path)
    # Nested brackets only resolve from the inside out.
    while True:
        unwrapped = _INDEX_PATTERN.sub(lambda match: f".{match.group(1)}.", path)
        if unwrapped == path:
            break
        path = unwrapped

    segments = [segment.strip() for segment in path.split('.')]
    normalized = '.'.join(segment for segment in segments if segment)
    if normalized:
        return normalized

    # Nothing but separators: hand back the trimmed input rather than an empty key.
    return raw_path.strip() or raw_path


def item_path(collection_path: str, index: int) -> str:
    """Build the normalized path of one element of a collection field."""
    return f"{normalize_path(collection_path)}.{index}"


def normalize_fs_path(path: str) -> str:
    """Return an absolute, forward-slash file path without a trailing slash."""
    if not path:
        return ''
    try:
        full_path = os.path.abspath(path)
    except (TypeError, ValueError):
        full_path = path
    return full_path.replace('\\', '/').rstrip('/')


def is_path_under_root(path: str, root: str) -> bool:
    """
    Check whether ``path`` lies inside ``root``.

    The comparison is case-insensitive and happens on whole path segments, so
    ``/mods/FooBar/a.xml`` is not considered to be under ``/mods/Foo``.
    """
    if not path or not root:
        return False

    normalized_path = normalize_fs_path(path).casefold()
    normalized_root = normalize_fs_path(root).casefold()
    if not normalized_root:
        # Filesystem root: everything absolute is inside it.
        return normalized_path.startswith('/')
    return normalized_path == normalized_root or normalized_path.startswith(normalized_root + '/')
