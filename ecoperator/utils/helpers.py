import hashlib
import re
import ipaddress
import yaml
import jsonpickle
from benedict import benedict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

MAX_NAME_LENGTH = 63


def now() -> str:
    return datetime.now(timezone.utc).isoformat()


def sort_dict_keys(d):
    """Recursively sort dictionary keys and handle nested structures.

    Args:
        d: Data structure (dict, list, or primitive type)

    Returns:
        Sorted version of the data structure
    """
    if isinstance(d, dict):
        return {key: sort_dict_keys(value) for key, value in sorted(d.items())}
    elif isinstance(d, list):
        return [sort_dict_keys(item) for item in d]
    else:
        return d


def canonicalize_dict(data):
    """
    Returns a canonical JSON representation of a dictionary.

    Keys are sorted recursively so the representation stays the same when
    only key order differs.
    """
    return jsonpickle.dumps(sort_dict_keys(data), unpicklable=False)


def upsert_condition(conds, newc):
    """In-memory merge by .type. Only bump lastTransitionTime when status flips."""
    conds = list(conds or [])
    for i, c in enumerate(conds):
        if c.get("type") == newc["type"]:
            ltt = c.get("lastTransitionTime") or now()
            if c.get("status") != newc["status"]:
                ltt = now()
            conds[i] = {**c, **newc, "lastTransitionTime": ltt}
            break
    else:
        conds.append({**newc, "lastTransitionTime": now()})
    return conds


def find_condition(conds, cond_type: str) -> Optional[Dict]:
    for c in conds or []:
        if c.get("type") == cond_type:
            return c
    return None


def condition_status(conds, cond_type: str) -> str:
    """Return "True", "False" or "Unknown" for the condition type."""
    c = find_condition(conds, cond_type)
    if c is None:
        return "Unknown"
    return c.get("status") or "Unknown"


def load_values(text: Optional[str]) -> Dict[str, Any]:
    """Parse a chart values document. Empty documents load as an empty mapping."""
    if not text:
        return {}
    data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"values must be a mapping, got {type(data).__name__}")
    return data


def dump_values(values: Dict[str, Any]) -> str:
    if not values:
        return ""
    return yaml.safe_dump(values, sort_keys=True, default_flow_style=False)


def yaml_diff(a: Optional[str], b: Optional[str]) -> bool:
    """Return True when two values documents differ structurally.

    Both sides are parsed and re-serialised canonically, so key order,
    comments and whitespace never count as a difference.
    """
    try:
        a_map = load_values(a)
    except (yaml.YAMLError, ValueError) as e:
        raise ValueError(f"yaml A values error: {e}") from e
    try:
        b_map = load_values(b)
    except (yaml.YAMLError, ValueError) as e:
        raise ValueError(f"yaml B values error: {e}") from e
    return canonicalize_dict(a_map) != canonicalize_dict(b_map)


def set_helm_values(values_yaml: Optional[str], paths: Dict[str, Any]) -> str:
    """Set dotted key paths inside a values document and return the new document.

    Existing keys are left alone unless a path names them. Keys already in the
    document may contain dots themselves, so paths are split into key lists.
    """
    if not paths:
        return values_yaml or ""
    values = benedict(load_values(values_yaml), keypath_separator=None)
    for path, new_value in paths.items():
        values[path.split(".")] = new_value
    return dump_values(values.dict())


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply a JSON merge patch: mappings merge, null deletes, anything else replaces."""
    if not isinstance(patch, dict):
        return patch
    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def merge_values(values_yaml: Optional[str], patch_yaml: Optional[str]) -> str:
    """Merge an override values document over chart values."""
    if not patch_yaml:
        return values_yaml or ""
    if not values_yaml:
        return patch_yaml
    merged = merge_patch(load_values(values_yaml), load_values(patch_yaml))
    return dump_values(merged)


def sha256_hex(data: str) -> str:
    return hashlib.sha256((data or "").encode()).hexdigest()


def truncate_text(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit]
    return text


def name_with_length_limit(prefix: str, name: str) -> str:
    """Join prefix and name, trimming to a valid object name length."""
    full = f"{prefix}{name}"
    if len(full) <= MAX_NAME_LENGTH:
        return full
    digest = hashlib.sha256(full.encode()).hexdigest()[:8]
    return f"{full[:MAX_NAME_LENGTH - 9]}-{digest}"


def lower_band_ip(cidr: str, index: int) -> str:
    """Return the address ``index`` positions after the network address."""
    network = ipaddress.ip_network(cidr, strict=False)
    if index >= network.num_addresses:
        raise ValueError(f"index {index} out of range for {cidr}")
    return str(network.network_address + index)


def slugify(text: str) -> str:
    """Lower case the text and collapse every run of other characters into a dash."""
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
