"""Publish the current key for out-of-band distribution.

Three files are written next to each other:

- ``<web-path>``: JSON record with the key and its expiry (epoch ms + text)
- ``<stem>_simple<suffix>``: the bare key, for consumers that cannot parse JSON
- ``key.html``: a viewer page that polls the record and counts down

Each file is replaced atomically (temp file + rename), so a reader sees
either the old record or the new one, never a key without its matching
rotation time.
"""

import contextlib
import os
import tempfile
from datetime import datetime
from pathlib import Path

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from gate.keyauth.clock import HUMAN_TIME_FORMAT
from gate.keyauth.exceptions import ArtifactWriteError
from gate.keyauth.host import ArtifactRecord

logger = structlog.get_logger()

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
VIEWER_FILENAME = "key.html"
REFRESH_INTERVAL_MS = 5 * 60 * 1000

# world-readable: the directory is meant to be served to players
_ARTIFACT_FILE_MODE = 0o644

_templates = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    keep_trailing_newline=True,
)


def simple_path(web_path: Path) -> Path:
    """``web/key.txt`` -> ``web/key_simple.txt``."""
    return web_path.with_name(f"{web_path.stem}_simple{web_path.suffix}")


def artifact_paths(web_path: Path) -> dict[str, Path]:
    """Published file name -> path, for the record, its plaintext copy and the viewer."""
    web_path = Path(web_path)
    paths = (web_path, simple_path(web_path), web_path.parent / VIEWER_FILENAME)
    return {path.name: path for path in paths}


def render_viewer(record_name: str, simple_name: str, fallback_hour: int = 12) -> str:
    template = _templates.get_template("key.html")
    return template.render(
        record_name=record_name,
        simple_name=simple_name,
        fallback_hour=fallback_hour,
        refresh_interval_ms=REFRESH_INTERVAL_MS,
    )


class LocalArtifactPublisher:
    def publish(self, web_path: Path, record: ArtifactRecord) -> None:
        """Write record, plaintext duplicate and viewer. Raises ArtifactWriteError."""
        web_path = Path(web_path)
        simple = simple_path(web_path)
        try:
            web_path.parent.mkdir(parents=True, exist_ok=True)
            _atomic_write(web_path, record.model_dump_json(by_alias=True))
            _atomic_write(simple, record.key)
            viewer = render_viewer(web_path.name, simple.name, _rotation_hour(record))
            _atomic_write(web_path.parent / VIEWER_FILENAME, viewer)
        except OSError as e:
            raise ArtifactWriteError(f"cannot write key artifact to {web_path}: {e}") from e
        logger.debug("published key artifact", web_path=str(web_path))


def _rotation_hour(record: ArtifactRecord) -> int:
    return datetime.strptime(record.update_time, HUMAN_TIME_FORMAT).hour  # noqa: DTZ007


def _atomic_write(target: Path, content: str) -> None:
    fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp", prefix=f".{target.name}_")
    fd_owned = True
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            fd_owned = False  # os.fdopen took ownership; it will close fd
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, _ARTIFACT_FILE_MODE)  # noqa: PTH101
        Path(tmp_path).replace(target)
    except BaseException:
        if fd_owned:
            with contextlib.suppress(OSError):
                os.close(fd)
        with contextlib.suppress(OSError):
            Path(tmp_path).unlink()
        raise
