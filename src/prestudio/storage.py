"""Project file serialization and artifact export."""

import base64
import io
import json
import logging
import re
import unicodedata
import zipfile
from pathlib import Path
from typing import List, Optional, Set, Tuple

import pandas as pd

from .models import ProjectDocument

logger = logging.getLogger(__name__)

DEFAULT_SLUG = "untitled-project"

# Export kind -> (scene attribute, file extension, archive suffix)
EXPORT_KINDS = {
    "image": ("primary_image", "png", "images"),
    "audio": ("audio", "wav", "voice"),
}


def slugify(text: Optional[str]) -> str:
    """Turn a project name into a file-name-safe slug.

    Accents are stripped, whitespace becomes a dash, anything left that is
    not an ASCII word character is dropped. An empty result falls back to
    DEFAULT_SLUG.
    """
    if not text:
        return DEFAULT_SLUG
    value = unicodedata.normalize("NFD", str(text).lower().replace("đ", "d"))
    value = "".join(ch for ch in value if not unicodedata.combining(ch))
    value = re.sub(r"\s+", "-", value)
    value = re.sub(r"[^\w\-]+", "", value, flags=re.ASCII)
    value = re.sub(r"-{2,}", "-", value)
    value = value.strip("-")
    return value or DEFAULT_SLUG


def project_filename(doc: ProjectDocument) -> str:
    return f"{slugify(doc.name)}.json"


def dump_document(doc: ProjectDocument) -> bytes:
    """Serialize a document exactly as it is held in memory."""
    return json.dumps(doc.to_json_dict(), ensure_ascii=False, indent=2).encode("utf-8")


def encode_data_uri(mime_type: str, data: bytes) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_uri(handle: str) -> Tuple[str, bytes]:
    """Split an asset handle into its MIME type and decoded payload.

    Raises:
        ValueError: If `handle` is not a base64 data URI.
    """
    match = re.match(r"^data:([^;,]+)?(?:;[^,]*)?;base64,(.*)$", handle or "", flags=re.S)
    if not match:
        raise ValueError("Asset is not a base64 data URI")
    mime_type = match.group(1) or "application/octet-stream"
    return mime_type, base64.b64decode(match.group(2))


def archive_name(doc: ProjectDocument, kind: str) -> str:
    _, _, suffix = EXPORT_KINDS[kind]
    return f"{slugify(doc.name)}-{suffix}.zip"


def _entry_name(label: str, extension: str, used: Set[str]) -> str:
    """Name an archive entry after a scene label, suffixing repeated labels."""
    base = label or "scene"
    name = f"{base}.{extension}"
    n = 1
    while name in used:
        n += 1
        name = f"{base}-{n}.{extension}"
    used.add(name)
    return name


def export_archive(doc: ProjectDocument, kind: str) -> Optional[bytes]:
    """Package every scene carrying an artifact of `kind` into a zip archive.

    Entries are named after each scene's display label; a repeated label gets
    a `-2`, `-3`, ... suffix. Returns None when no scene has such an artifact.

    Raises:
        ValueError: If `kind` is not one of EXPORT_KINDS.
    """
    if kind not in EXPORT_KINDS:
        raise ValueError(f"Unknown export kind: {kind}. Expected one of {sorted(EXPORT_KINDS)}")
    attribute, extension, _ = EXPORT_KINDS[kind]

    mem = io.BytesIO()
    used: Set[str] = set()
    with zipfile.ZipFile(mem, "w", zipfile.ZIP_DEFLATED) as z:
        for scene in doc.scenes:
            handle = getattr(scene, attribute)
            if not handle:
                continue
            _, payload = decode_data_uri(handle)
            z.writestr(_entry_name(scene.scene_id, extension, used), payload)

    count = len(used)
    if count == 0:
        logger.info(f"No scenes with {kind} to export")
        return None

    logger.info(f"Exported {count} {kind} file(s)")
    mem.seek(0)
    return mem.read()


def read_sheet(path: Path) -> List[List[Optional[str]]]:
    """Read the first sheet of a spreadsheet as rows of cell text.

    `.csv` files are read as text, anything else as an Excel workbook. The
    header row is dropped and empty cells come back as None.

    Raises:
        ValueError: If the file cannot be parsed as a sheet.
        OSError: If the file cannot be read.
    """
    path = Path(path)
    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path, header=None, dtype=str)
    else:
        df = pd.read_excel(path, sheet_name=0, header=None, dtype=str)
    df = df.astype(object).where(df.notna(), None)
    rows = df.values.tolist()[1:]
    logger.info(f"Read {len(rows)} row(s) from {path.name}")
    return rows
