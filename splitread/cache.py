import re
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any

from prefect.assets import Asset, AssetProperties
from prefect.assets import materialize as _materialize
from prefect.cache_policies import INPUTS, TASK_SOURCE, CachePolicy
from prefect.context import TaskRunContext
from prefect.utilities.hashing import hash_objects

from splitread.codecs.lzop import index_path_for
from splitread.config import CachePathsConfig

_ALLOWED = re.compile(r"[^A-Za-z0-9._/-]")


def asset_from_local_path(path: Path) -> Asset:
    """Create a Prefect Asset from a local filesystem path.

    - Asset key is a sanitized identifier derived from the path
    - Real path is stored in Asset.properties.url
    - Deterministic: same path -> same key
    """
    path = path.expanduser().resolve()

    # NOTE: this is an IDENTIFIER, not a real path
    safe_key = _ALLOWED.sub("_", path.as_posix())

    return Asset(
        key=f"localfs://{safe_key}",
        properties=AssetProperties(
            name=path.name,
            url=path.as_uri(),
        ),
    )


def file_fingerprint(path: Path) -> tuple[str, int, int, int]:
    """(exists_flag, mtime_ns, size_bytes, inode).

    inode helps detect atomic-save editors that replace the file.
    """
    try:
        st = path.stat()
        return ("1", int(st.st_mtime_ns), int(st.st_size), int(st.st_ino))
    except FileNotFoundError:
        return ("0", 0, 0, 0)


@dataclass
class InputFileFingerprintPolicy(CachePolicy):
    """Cache key component from every Path argument and its block index sidecar.

    A rewritten input file, or a newly built index, changes the key, so the
    task reruns instead of serving records decoded from stale bytes.
    """

    def compute_key(
        self,
        task_ctx: TaskRunContext,  # noqa: ARG002 - not used, but part of the interface
        inputs: dict[str, Any],
        flow_parameters: dict[str, Any],  # noqa: ARG002 - not used, but part of the interface
        **kwargs: object,  # noqa: ARG002 - not used, but part of the interface
    ) -> str | None:
        paths = sorted(
            (name, value) for name, value in inputs.items() if isinstance(value, Path)
        )
        if not paths:
            return None

        payload = [
            (
                name,
                file_fingerprint(path),
                file_fingerprint(index_path_for(path)),
            )
            for name, path in paths
        ]
        return hash_objects(payload, raise_on_failure=True)


CACHE_POLICY = (INPUTS + TASK_SOURCE + InputFileFingerprintPolicy()).configure(
    key_storage=CachePathsConfig().cache_root / "prefect",
)

materialize = partial(_materialize, persist_result=True, cache_policy=CACHE_POLICY)
