import hashlib
import json

def hash_locked_packages(packages: list) -> str:
    """
    returns a short sha256 hash of locked (name, version, markers) entries.
    order of entries and of markers does not matter.
    """
    if not isinstance(packages, list):
        raise TypeError(f"expected list, got {type(packages).__name__}")

    data = sorted(
        [p.get("name", ""), p.get("version", ""), sorted(p.get("markers", []))]
        for p in packages
    )
    digest = hashlib.sha256(json.dumps(data, sort_keys=True).encode()).hexdigest()
    return digest[:12]  # truncate for readability
