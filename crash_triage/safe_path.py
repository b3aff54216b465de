"""Path traversal defense for attacker-influenced file names."""
from pathlib import Path
from typing import Optional, Union


def resolve_safe_child(base_dir: Union[str, Path], candidate_name: str) -> Optional[Path]:
    """Resolve ``candidate_name`` inside ``base_dir``.

    Returns the canonical child path, or ``None`` when the name would land
    outside of ``base_dir`` (``..`` segments, absolute paths, symlinks) or
    on ``base_dir`` itself. Callers treat ``None`` as "do not write".
    """
    base = Path(base_dir).resolve()
    target = (base / candidate_name).resolve()
    if base not in target.parents:
        return None
    return target
