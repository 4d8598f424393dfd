"""Heuristic generic-wrapper unwrapping for raw type annotations.

This is plain text matching, not a type grammar. A fixed allow-list of
container names (smart pointers, cells and locks, collections,
optional/result-like types) is peeled off one layer at a time::

    >>> unwrap_type("Arc<Vec<Widget>>")
    UnwrapResult(is_wrapper=True, inner_type='Widget', wrapper_label='Arc<Vec>')

When a wrapper takes several type arguments (``HashMap<K, V>``,
``Result<T, E>``) only the first one is kept as the payload.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

WRAPPER_TYPES = frozenset({
    # smart pointers
    "Box", "Rc", "Arc", "Weak", "Pin", "Cow",
    # interior mutability / sync
    "Cell", "RefCell", "OnceCell", "Mutex", "RwLock", "OnceLock",
    # collections
    "Vec", "VecDeque", "LinkedList", "HashMap", "BTreeMap",
    "HashSet", "BTreeSet", "BinaryHeap", "IndexMap", "IndexSet",
    # optional / result-like
    "Option", "Result",
})

RESERVED_TYPES = frozenset({
    "bool", "char", "str", "String",
    "i8", "i16", "i32", "i64", "i128", "isize",
    "u8", "u16", "u32", "u64", "u128", "usize",
    "f32", "f64",
    "Self", "()", "!",
})

_GENERIC_RE = re.compile(r"^\s*((?:[A-Za-z_]\w*::)*[A-Za-z_]\w*)\s*<(.*)>\s*$", re.DOTALL)
_REFERENCE_RE = re.compile(
    r"^(?:&\s*(?:'\w+\s+)?(?:mut\s+)?|\*\s*(?:const|mut)\s+|(?:dyn|impl)\s+)+"
)
_NAME_RE = re.compile(r"[A-Za-z_]\w*(?:::[A-Za-z_]\w*)*")


@dataclass(frozen=True)
class UnwrapResult:
    is_wrapper: bool
    inner_type: Optional[str] = None
    wrapper_label: Optional[str] = None


def strip_reference(text: str) -> str:
    """Drop leading reference, raw-pointer and ``dyn``/``impl`` prefixes."""
    return _REFERENCE_RE.sub("", text.strip()).strip()


def is_reserved(text: str) -> bool:
    return strip_reference(text) in RESERVED_TYPES


def base_name(text: str) -> Optional[str]:
    """Return the bare (namespace-free) leading type name of *text*."""
    match = _NAME_RE.search(strip_reference(text))
    if match is None:
        return None
    return match.group(0).split("::")[-1]


def _depth_changes(text: str):
    """Yield ``(char, delta)`` pairs; the ``>`` of a ``->`` arrow is not a bracket."""
    prev = ""
    for ch in text:
        if ch in "<([{":
            yield ch, 1
        elif ch in ">)]}" and not (ch == ">" and prev == "-"):
            yield ch, -1
        else:
            yield ch, 0
        prev = ch


def split_type_arguments(args: str) -> List[str]:
    """Split a generic argument list on top-level commas."""
    parts: List[str] = []
    depth = 0
    current = []
    for ch, delta in _depth_changes(args):
        depth += delta
        if ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return parts


def _balanced(args: str) -> bool:
    depth = 0
    for ch, delta in _depth_changes(args):
        if ch in "<>":
            depth += delta
            if depth < 0:
                return False
    return depth == 0


def _payload_argument(args: str) -> str:
    # lifetimes (Cow<'a, str>) are never the payload
    for arg in split_type_arguments(args):
        if not arg.startswith("'"):
            return arg
    return ""


def unwrap_type(text: str) -> UnwrapResult:
    """Peel recognized wrapper layers off *text*.

    A comma-separated list (a multi-field enum variant) is reduced to its
    first entry before unwrapping.
    """
    current = strip_reference(_payload_argument(text))
    layers: List[str] = []

    while True:
        match = _GENERIC_RE.match(current)
        if match is None or not _balanced(match.group(2)):
            break
        name = match.group(1).split("::")[-1]
        if name not in WRAPPER_TYPES:
            break
        layers.append(name)
        current = strip_reference(_payload_argument(match.group(2)))

    if not layers or not current:
        return UnwrapResult(is_wrapper=False)

    label = layers[0] + "".join(f"<{name}" for name in layers[1:]) + ">" * (len(layers) - 1)
    return UnwrapResult(is_wrapper=True, inner_type=current, wrapper_label=label)
